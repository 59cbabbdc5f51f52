"""Lecture transcription-to-notes pipeline."""

__version__ = "0.1.0"
