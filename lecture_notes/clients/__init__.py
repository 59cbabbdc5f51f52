from lecture_notes.clients.groq_client import GroqClient
from lecture_notes.clients.openai_client import OpenAIClient
from lecture_notes.clients.soniox_client import SonioxClient

__all__ = ["GroqClient", "OpenAIClient", "SonioxClient"]
