from __future__ import annotations

import json
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import text as sql_text, bindparam
from sqlalchemy.exc import IntegrityError

from habitlog.db import get_sessionmaker
from habitlog.db_init import (
    HABITS_TABLE,
    COMPLETIONS_TABLE,
    MOOD_TABLE,
    PROFILES_TABLE,
    CHAT_REQUESTS_TABLE,
    CONVERSATIONS_TABLE,
    MESSAGES_TABLE,
    DEVICE_TOKENS_TABLE,
)

HABIT_COLUMNS = ["id", "user_id", "name", "category", "frequency", "created_at"]
COMPLETION_COLUMNS = ["habit_id", "user_id", "date", "completed", "duration_seconds", "updated_at"]
MOOD_COLUMNS = ["user_id", "date", "mood", "notes", "tags_json", "created_at"]
REQUEST_COLUMNS = ["id", "from_user_id", "to_user_id", "status", "created_at"]
CONVERSATION_COLUMNS = ["id", "user1_id", "user2_id", "created_at", "updated_at"]
MESSAGE_COLUMNS = ["id", "conversation_id", "seq", "sender_id", "content", "created_at"]


def new_id() -> str:
    return uuid4().hex


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def pair_key(user_a: str, user_b: str) -> str:
    return "|".join(sorted((user_a, user_b)))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# Habits


async def list_habits(user_id: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(HABIT_COLUMNS)}
                FROM {HABITS_TABLE}
                WHERE user_id = :user_id
                ORDER BY created_at ASC, id ASC
                """
            ),
            {"user_id": user_id},
        )).mappings().all()
    return [dict(row) for row in rows]


async def insert_habit(record: dict) -> dict:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {HABITS_TABLE} ({', '.join(HABIT_COLUMNS)})
                VALUES (:id, :user_id, :name, :category, :frequency, :created_at)
                """
            ),
            record,
        )
        await session.commit()
    return record


async def get_habit(user_id: str, habit_id: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(
                f"SELECT {', '.join(HABIT_COLUMNS)} FROM {HABITS_TABLE} "
                "WHERE id = :id AND user_id = :user_id"
            ),
            {"id": habit_id, "user_id": user_id},
        )).mappings().fetchone()
    return dict(row) if row else None


async def update_habit(user_id: str, habit_id: str, patch: dict) -> dict | None:
    allowed = {"name", "category", "frequency"}
    updates = []
    params = {"id": habit_id, "user_id": user_id}
    for key, value in patch.items():
        if key not in allowed:
            continue
        updates.append(f"{key} = :{key}")
        params[key] = value
    if updates:
        session_factory = get_sessionmaker()
        async with session_factory() as session:
            result = await session.execute(
                sql_text(
                    f"UPDATE {HABITS_TABLE} SET {', '.join(updates)} WHERE id = :id AND user_id = :user_id"
                ),
                params,
            )
            await session.commit()
        if not result.rowcount:
            return None
    return await get_habit(user_id, habit_id)


async def delete_habit(user_id: str, habit_id: str) -> bool:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(f"DELETE FROM {COMPLETIONS_TABLE} WHERE user_id = :user_id AND habit_id = :habit_id"),
            {"user_id": user_id, "habit_id": habit_id},
        )
        result = await session.execute(
            sql_text(f"DELETE FROM {HABITS_TABLE} WHERE user_id = :user_id AND id = :habit_id"),
            {"user_id": user_id, "habit_id": habit_id},
        )
        if not result.rowcount:
            await session.rollback()
            return False
        await session.commit()
    return True


# Completions


async def list_completions(user_id: str, start_iso: str | None = None, end_iso: str | None = None) -> list[dict]:
    clauses = ["user_id = :user_id"]
    params = {"user_id": user_id}
    if start_iso:
        clauses.append("date >= :start_date")
        params["start_date"] = start_iso
    if end_iso:
        clauses.append("date <= :end_date")
        params["end_date"] = end_iso
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(COMPLETION_COLUMNS)}
                FROM {COMPLETIONS_TABLE}
                WHERE {' AND '.join(clauses)}
                ORDER BY date, habit_id
                """
            ),
            params,
        )).mappings().all()
    return [dict(row) for row in rows]


async def toggle_completion(user_id: str, habit_id: str, day_iso: str, duration_seconds: int | None = None) -> dict:
    """Flip the (habit, day) record inside one transaction and return the stored row."""
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        existing = (await session.execute(
            sql_text(
                f"""
                SELECT completed, duration_seconds
                FROM {COMPLETIONS_TABLE}
                WHERE habit_id = :habit_id AND date = :date AND user_id = :user_id
                """
            ),
            {"habit_id": habit_id, "date": day_iso, "user_id": user_id},
        )).mappings().fetchone()

        if existing is None:
            completed = 1
            stored_duration = duration_seconds
        else:
            completed = 0 if int(existing["completed"] or 0) else 1
            if completed:
                stored_duration = duration_seconds if duration_seconds is not None else existing["duration_seconds"]
            else:
                stored_duration = None

        row = {
            "habit_id": habit_id,
            "user_id": user_id,
            "date": day_iso,
            "completed": completed,
            "duration_seconds": stored_duration,
            "updated_at": now_iso(),
        }
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {COMPLETIONS_TABLE} ({', '.join(COMPLETION_COLUMNS)})
                VALUES (:habit_id, :user_id, :date, :completed, :duration_seconds, :updated_at)
                ON CONFLICT(habit_id, date) DO UPDATE SET
                    completed = EXCLUDED.completed,
                    duration_seconds = EXCLUDED.duration_seconds,
                    updated_at = EXCLUDED.updated_at
                """
            ),
            row,
        )
        await session.commit()
    return row


async def list_completed_habit_ids(user_id: str, day_iso: str) -> set[str]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT habit_id FROM {COMPLETIONS_TABLE}
                WHERE user_id = :user_id AND date = :date AND completed = 1
                """
            ),
            {"user_id": user_id, "date": day_iso},
        )).all()
    return {str(row[0]) for row in rows}


# Mood


async def list_mood_entries(user_id: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(MOOD_COLUMNS)}
                FROM {MOOD_TABLE}
                WHERE user_id = :user_id
                ORDER BY date
                """
            ),
            {"user_id": user_id},
        )).mappings().all()
    return [dict(row) for row in rows]


async def upsert_mood_entry(user_id: str, day_iso: str, mood: int, notes: str | None, tags: list[str]) -> dict:
    row = {
        "user_id": user_id,
        "date": day_iso,
        "mood": int(mood),
        "notes": notes,
        "tags_json": json.dumps(list(tags or []), ensure_ascii=False),
        "created_at": now_iso(),
    }
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {MOOD_TABLE} ({', '.join(MOOD_COLUMNS)})
                VALUES (:user_id, :date, :mood, :notes, :tags_json, :created_at)
                ON CONFLICT(user_id, date) DO UPDATE SET
                    mood = EXCLUDED.mood,
                    notes = EXCLUDED.notes,
                    tags_json = EXCLUDED.tags_json,
                    created_at = EXCLUDED.created_at
                """
            ),
            row,
        )
        await session.commit()
    return row


# Profiles


async def upsert_profile(user_id: str, display_name: str | None, avatar_url: str | None = None) -> dict:
    row = {
        "user_id": user_id,
        "display_name": display_name,
        "avatar_url": avatar_url,
        "updated_at": now_iso(),
    }
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {PROFILES_TABLE} (user_id, display_name, avatar_url, updated_at)
                VALUES (:user_id, :display_name, :avatar_url, :updated_at)
                ON CONFLICT(user_id) DO UPDATE SET
                    display_name = EXCLUDED.display_name,
                    avatar_url = COALESCE(EXCLUDED.avatar_url, {PROFILES_TABLE}.avatar_url),
                    updated_at = EXCLUDED.updated_at
                """
            ),
            row,
        )
        await session.commit()
    return row


async def get_profiles(user_ids: list[str]) -> dict[str, dict]:
    if not user_ids:
        return {}
    stmt = sql_text(
        f"""
        SELECT user_id, display_name, avatar_url
        FROM {PROFILES_TABLE}
        WHERE user_id IN :user_ids
        """
    ).bindparams(bindparam("user_ids", expanding=True))
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(stmt, {"user_ids": list(user_ids)})).mappings().all()
    return {str(row["user_id"]): dict(row) for row in rows}


async def search_profiles(query: str, exclude_user_id: str, limit: int = 20) -> list[dict]:
    pattern = f"%{_escape_like(query.lower())}%"
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT user_id, display_name, avatar_url
                FROM {PROFILES_TABLE}
                WHERE user_id != :exclude_user_id
                  AND LOWER(display_name) LIKE :pattern ESCAPE '\\'
                ORDER BY display_name
                LIMIT :limit
                """
            ),
            {"exclude_user_id": exclude_user_id, "pattern": pattern, "limit": limit},
        )).mappings().all()
    return [dict(row) for row in rows]


# Chat requests


async def find_active_request_between(user_a: str, user_b: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(REQUEST_COLUMNS)}
                FROM {CHAT_REQUESTS_TABLE}
                WHERE ((from_user_id = :user_a AND to_user_id = :user_b)
                    OR (from_user_id = :user_b AND to_user_id = :user_a))
                  AND status IN ('pending', 'accepted')
                ORDER BY created_at DESC
                LIMIT 1
                """
            ),
            {"user_a": user_a, "user_b": user_b},
        )).mappings().fetchone()
    return dict(row) if row else None


async def insert_chat_request(from_user_id: str, to_user_id: str) -> dict | None:
    """Insert a pending request; ``None`` when the pair already has an active one."""
    record = {
        "id": new_id(),
        "from_user_id": from_user_id,
        "to_user_id": to_user_id,
        "status": "pending",
        "created_at": now_iso(),
    }
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        try:
            await session.execute(
                sql_text(
                    f"""
                    INSERT INTO {CHAT_REQUESTS_TABLE} ({', '.join(REQUEST_COLUMNS)}, pair_key)
                    VALUES (:id, :from_user_id, :to_user_id, :status, :created_at, :pair_key)
                    """
                ),
                {**record, "pair_key": pair_key(from_user_id, to_user_id)},
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return None
    return record


async def get_chat_request(request_id: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(f"SELECT {', '.join(REQUEST_COLUMNS)} FROM {CHAT_REQUESTS_TABLE} WHERE id = :id"),
            {"id": request_id},
        )).mappings().fetchone()
    return dict(row) if row else None


async def set_chat_request_status(request_id: str, status: str) -> None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(f"UPDATE {CHAT_REQUESTS_TABLE} SET status = :status WHERE id = :id"),
            {"id": request_id, "status": status},
        )
        await session.commit()


async def list_received_requests(user_id: str, status: str = "pending") -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(REQUEST_COLUMNS)}
                FROM {CHAT_REQUESTS_TABLE}
                WHERE to_user_id = :user_id AND status = :status
                ORDER BY created_at DESC
                """
            ),
            {"user_id": user_id, "status": status},
        )).mappings().all()
    return [dict(row) for row in rows]


async def list_sent_requests(user_id: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(REQUEST_COLUMNS)}
                FROM {CHAT_REQUESTS_TABLE}
                WHERE from_user_id = :user_id
                ORDER BY created_at DESC
                """
            ),
            {"user_id": user_id},
        )).mappings().all()
    return [dict(row) for row in rows]


# Conversations and messages


async def find_conversation_between(user_a: str, user_b: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(CONVERSATION_COLUMNS)}
                FROM {CONVERSATIONS_TABLE}
                WHERE (user1_id = :user_a AND user2_id = :user_b)
                   OR (user1_id = :user_b AND user2_id = :user_a)
                LIMIT 1
                """
            ),
            {"user_a": user_a, "user_b": user_b},
        )).mappings().fetchone()
    return dict(row) if row else None


async def insert_conversation(user1_id: str, user2_id: str) -> dict | None:
    """Insert the pair's conversation; ``None`` when one already exists."""
    now = now_iso()
    record = {"id": new_id(), "user1_id": user1_id, "user2_id": user2_id, "created_at": now, "updated_at": now}
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        try:
            await session.execute(
                sql_text(
                    f"""
                    INSERT INTO {CONVERSATIONS_TABLE} ({', '.join(CONVERSATION_COLUMNS)}, pair_key)
                    VALUES (:id, :user1_id, :user2_id, :created_at, :updated_at, :pair_key)
                    """
                ),
                {**record, "pair_key": pair_key(user1_id, user2_id)},
            )
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return None
    return record


async def get_conversation(conversation_id: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(f"SELECT {', '.join(CONVERSATION_COLUMNS)} FROM {CONVERSATIONS_TABLE} WHERE id = :id"),
            {"id": conversation_id},
        )).mappings().fetchone()
    return dict(row) if row else None


async def list_conversations(user_id: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(CONVERSATION_COLUMNS)}
                FROM {CONVERSATIONS_TABLE}
                WHERE user1_id = :user_id OR user2_id = :user_id
                ORDER BY updated_at DESC
                """
            ),
            {"user_id": user_id},
        )).mappings().all()
    return [dict(row) for row in rows]


async def get_last_message(conversation_id: str) -> dict | None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        row = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(MESSAGE_COLUMNS)}
                FROM {MESSAGES_TABLE}
                WHERE conversation_id = :conversation_id
                ORDER BY seq DESC
                LIMIT 1
                """
            ),
            {"conversation_id": conversation_id},
        )).mappings().fetchone()
    return dict(row) if row else None


async def list_messages(conversation_id: str) -> list[dict]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(
                f"""
                SELECT {', '.join(MESSAGE_COLUMNS)}
                FROM {MESSAGES_TABLE}
                WHERE conversation_id = :conversation_id
                ORDER BY seq ASC
                """
            ),
            {"conversation_id": conversation_id},
        )).mappings().all()
    return [dict(row) for row in rows]


async def insert_message(conversation_id: str, sender_id: str, content: str) -> dict | None:
    """Insert the message and bump the conversation in one commit.

    The conversation row hands out ``seq``, so messages order by commit
    rather than by the writer's clock. ``None`` when the conversation is gone.
    """
    record = {
        "id": new_id(),
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "content": content,
        "created_at": now_iso(),
    }
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        seq = (await session.execute(
            sql_text(
                f"""
                UPDATE {CONVERSATIONS_TABLE}
                SET updated_at = :updated_at, message_count = message_count + 1
                WHERE id = :id
                RETURNING message_count
                """
            ),
            {"id": conversation_id, "updated_at": record["created_at"]},
        )).scalar_one_or_none()
        if seq is None:
            await session.rollback()
            return None
        record["seq"] = int(seq)
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {MESSAGES_TABLE} ({', '.join(MESSAGE_COLUMNS)})
                VALUES (:id, :conversation_id, :seq, :sender_id, :content, :created_at)
                """
            ),
            record,
        )
        await session.commit()
    return record


# Device tokens


async def upsert_device_token(user_id: str, token: str) -> None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(
                f"""
                INSERT INTO {DEVICE_TOKENS_TABLE} (user_id, token, created_at)
                VALUES (:user_id, :token, :created_at)
                ON CONFLICT(user_id, token) DO NOTHING
                """
            ),
            {"user_id": user_id, "token": token, "created_at": now_iso()},
        )
        await session.commit()


async def delete_device_tokens(user_id: str) -> None:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        await session.execute(
            sql_text(f"DELETE FROM {DEVICE_TOKENS_TABLE} WHERE user_id = :user_id"),
            {"user_id": user_id},
        )
        await session.commit()


async def count_device_tokens(user_id: str) -> int:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        count = (await session.execute(
            sql_text(f"SELECT COUNT(*) FROM {DEVICE_TOKENS_TABLE} WHERE user_id = :user_id"),
            {"user_id": user_id},
        )).scalar_one()
    return int(count or 0)


async def list_device_tokens() -> dict[str, list[str]]:
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        rows = (await session.execute(
            sql_text(f"SELECT user_id, token FROM {DEVICE_TOKENS_TABLE} ORDER BY user_id, created_at")
        )).mappings().all()
    by_user: dict[str, list[str]] = {}
    for row in rows:
        by_user.setdefault(str(row["user_id"]), []).append(str(row["token"]))
    return by_user
