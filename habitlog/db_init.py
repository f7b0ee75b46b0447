from __future__ import annotations

from sqlalchemy import text as sql_text

from habitlog.db import get_engine


HABITS_TABLE = "habits"
COMPLETIONS_TABLE = "habit_completions"
MOOD_TABLE = "mood_entries"
PROFILES_TABLE = "profiles"
CHAT_REQUESTS_TABLE = "chat_requests"
CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"
DEVICE_TOKENS_TABLE = "device_tokens"


async def init_db():
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {HABITS_TABLE} (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    frequency TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {COMPLETIONS_TABLE} (
                    habit_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    completed INTEGER DEFAULT 0,
                    duration_seconds INTEGER,
                    updated_at TEXT,
                    PRIMARY KEY (habit_id, date)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {MOOD_TABLE} (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    mood INTEGER NOT NULL,
                    notes TEXT,
                    tags_json TEXT,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, date)
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {PROFILES_TABLE} (
                    user_id TEXT PRIMARY KEY,
                    display_name TEXT,
                    avatar_url TEXT,
                    updated_at TEXT
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {CHAT_REQUESTS_TABLE} (
                    id TEXT PRIMARY KEY,
                    from_user_id TEXT NOT NULL,
                    to_user_id TEXT NOT NULL,
                    pair_key TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {CONVERSATIONS_TABLE} (
                    id TEXT PRIMARY KEY,
                    user1_id TEXT NOT NULL,
                    user2_id TEXT NOT NULL,
                    pair_key TEXT NOT NULL,
                    message_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {MESSAGES_TABLE} (
                    id TEXT PRIMARY KEY,
                    conversation_id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    sender_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
        )
        await conn.execute(
            sql_text(
                f"""
                CREATE TABLE IF NOT EXISTS {DEVICE_TOKENS_TABLE} (
                    user_id TEXT NOT NULL,
                    token TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, token)
                )
                """
            )
        )
        # One active request and one conversation per unordered pair of users.
        await conn.execute(
            sql_text(
                f"CREATE UNIQUE INDEX IF NOT EXISTS uq_{CHAT_REQUESTS_TABLE}_active_pair "
                f"ON {CHAT_REQUESTS_TABLE} (pair_key) WHERE status IN ('pending', 'accepted')"
            )
        )
        await conn.execute(
            sql_text(
                f"CREATE UNIQUE INDEX IF NOT EXISTS uq_{CONVERSATIONS_TABLE}_pair "
                f"ON {CONVERSATIONS_TABLE} (pair_key)"
            )
        )
        await conn.execute(
            sql_text(
                f"CREATE UNIQUE INDEX IF NOT EXISTS uq_{MESSAGES_TABLE}_seq "
                f"ON {MESSAGES_TABLE} (conversation_id, seq)"
            )
        )

    async def ensure_index(index_sql: str) -> None:
        try:
            async with engine.begin() as conn:
                await conn.execute(sql_text(index_sql))
        except Exception:
            return

    await ensure_index(
        f"CREATE INDEX IF NOT EXISTS idx_{HABITS_TABLE}_user "
        f"ON {HABITS_TABLE} (user_id, created_at)"
    )
    await ensure_index(
        f"CREATE INDEX IF NOT EXISTS idx_{COMPLETIONS_TABLE}_user_date "
        f"ON {COMPLETIONS_TABLE} (user_id, date)"
    )
    await ensure_index(
        f"CREATE INDEX IF NOT EXISTS idx_{CHAT_REQUESTS_TABLE}_pair "
        f"ON {CHAT_REQUESTS_TABLE} (from_user_id, to_user_id, status)"
    )
    await ensure_index(
        f"CREATE INDEX IF NOT EXISTS idx_{CONVERSATIONS_TABLE}_users "
        f"ON {CONVERSATIONS_TABLE} (user1_id, user2_id)"
    )
