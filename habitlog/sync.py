from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List

from sqlalchemy.exc import SQLAlchemyError

from habitlog.errors import HabitlogError, RemoteFailure

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class Observable:
    """Change notification shared by the session stores.

    Listeners receive ``(event, payload)`` after the local cache has been
    updated. A failing listener is logged and never affects the mutation.
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: str, payload: Any = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Store listener failed for %s", event)


async def apply_remote(
    remote_call: Awaitable[Any],
    apply_local: Callable[[Any], Any] | None = None,
    *,
    action: str = "remote call",
) -> Any:
    """Await the remote write, then mirror its result into the local cache.

    On failure nothing is applied: database and transport errors surface as
    ``RemoteFailure``, domain errors propagate unchanged.
    """
    try:
        result = await remote_call
    except HabitlogError:
        raise
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("%s failed: %s", action, exc)
        raise RemoteFailure(f"{action} failed: {exc}") from exc
    if apply_local is None:
        return result
    return apply_local(result)


async def best_effort(refresh: Awaitable[Any], *, action: str = "refresh") -> None:
    """Run a background refresh whose failure must not undo the mutation before it."""
    try:
        await refresh
    except Exception as exc:
        logger.warning("%s failed: %s", action, exc)
