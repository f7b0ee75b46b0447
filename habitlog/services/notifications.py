from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, Iterable, List

from firebase_admin import messaging
from sqlalchemy.exc import SQLAlchemyError

from habitlog import repositories
from habitlog.errors import ValidationError
from habitlog.models import Habit, Identity
from habitlog.progress import is_due
from habitlog.services import firebase
from habitlog.sync import apply_remote

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Habit Reminder"
REMINDER_NAME_LIMIT = 3


class NotificationRegistrar:
    def __init__(self, identity: Identity | None, remote=repositories):
        self.identity = identity
        self._remote = remote

    async def register_device(self, token: str) -> bool:
        token = (token or "").strip()
        if not token:
            raise ValidationError("Device token cannot be empty", field="token")
        if not self.identity:
            return False
        await apply_remote(self._remote.upsert_device_token(self.identity.user_id, token), action="register device")
        logger.info("Device registered for %s", self.identity.user_id)
        return True

    async def unregister_devices(self) -> bool:
        if not self.identity:
            return False
        await apply_remote(self._remote.delete_device_tokens(self.identity.user_id), action="unregister devices")
        logger.info("Devices unregistered for %s", self.identity.user_id)
        return True

    async def is_enabled(self) -> bool:
        if not self.identity:
            return False
        count = await apply_remote(self._remote.count_device_tokens(self.identity.user_id), action="check devices")
        return count > 0


def incomplete_due_habits(habits: Iterable[Habit], completed_ids: set[str], today: date) -> List[Habit]:
    return [habit for habit in habits if is_due(habit, today) and habit.id not in completed_ids]


def build_reminder(incomplete: List[Habit]) -> dict:
    count = len(incomplete)
    names = ", ".join(habit.name for habit in incomplete[:REMINDER_NAME_LIMIT])
    more = f" and {count - REMINDER_NAME_LIMIT} more" if count > REMINDER_NAME_LIMIT else ""
    plural = "s" if count > 1 else ""
    return {
        "notification": {
            "title": REMINDER_TITLE,
            "body": f"You have {count} incomplete task{plural}: {names}{more}",
        },
        "data": {"type": "habit_reminder", "incomplete_count": str(count)},
    }


def build_push(token: str, reminder: dict) -> messaging.Message:
    return messaging.Message(
        notification=messaging.Notification(**reminder["notification"]),
        data=reminder["data"],
        token=token,
    )


async def send_habit_reminders(
    today: date | None = None,
    remote=repositories,
    send: Callable[[messaging.Message], str] | None = None,
) -> dict:
    """Push a reminder to every device of every user with due, incomplete habits.

    ``send`` delivers one message and blocks; it runs in worker threads.
    Defaults to Firebase, which raises ``RemoteFailure`` when unconfigured.
    """
    if send is None:
        firebase.get_firebase_app()
        send = firebase.send_message
    today = today or date.today()
    day_iso = today.isoformat()
    logger.info("Checking incomplete habits for %s", day_iso)

    tokens_by_user = await apply_remote(remote.list_device_tokens(), action="load device tokens")
    if not tokens_by_user:
        logger.info("No device tokens found")
        return {"successful": 0, "failed": 0}

    pushes: List[messaging.Message] = []
    for user_id, tokens in tokens_by_user.items():
        try:
            habits = [Habit.from_row(row) for row in await remote.list_habits(user_id)]
            completed_ids = await remote.list_completed_habit_ids(user_id, day_iso)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Failed to load habits for %s: %s", user_id, exc)
            continue
        incomplete = incomplete_due_habits(habits, completed_ids, today)
        if not incomplete:
            logger.info("User %s has completed all habits", user_id)
            continue
        logger.info("User %s has %s incomplete habits", user_id, len(incomplete))
        reminder = build_reminder(incomplete)
        pushes.extend(build_push(token, reminder) for token in tokens)

    results = await asyncio.gather(
        *[asyncio.to_thread(send, push) for push in pushes],
        return_exceptions=True,
    )
    failed = 0
    for push, result in zip(pushes, results):
        if isinstance(result, Exception):
            failed += 1
            logger.warning("Push delivery to %s failed: %s", push.token, result)
    successful = len(results) - failed
    logger.info("Sent %s notifications, %s failed", successful, failed)
    return {"successful": successful, "failed": failed}
