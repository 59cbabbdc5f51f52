import aiosqlite

from lecture_notes.config import settings

CREATE_LECTURES = """
CREATE TABLE IF NOT EXISTS lectures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL DEFAULT 'Untitled Lecture',
    status TEXT NOT NULL DEFAULT 'recording',
    audio_url TEXT,
    job_id TEXT,
    transcript_json TEXT,
    user_keypoints_json TEXT NOT NULL DEFAULT '[]',
    ai_notes TEXT,
    final_notes TEXT,
    notes_edited INTEGER NOT NULL DEFAULT 0,
    fact_checks_json TEXT,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_LECTURES_JOB_INDEX = """
CREATE INDEX IF NOT EXISTS idx_lectures_job_id ON lectures (job_id)
"""

_DDL = [CREATE_LECTURES, CREATE_LECTURES_JOB_INDEX]


async def init_db() -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(settings.database_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn() -> aiosqlite.Connection:
    """Async connection for use in route handlers and pipeline stages."""
    conn = await aiosqlite.connect(settings.database_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn
