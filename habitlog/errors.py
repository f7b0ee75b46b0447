from __future__ import annotations


class HabitlogError(Exception):
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_detail(self) -> dict:
        detail = {"error": type(self).__name__, "message": self.message}
        if self.field:
            detail["field"] = self.field
        return detail


class ValidationError(HabitlogError):
    status_code = 400


class NotFoundError(HabitlogError):
    status_code = 404


class ConflictError(HabitlogError):
    status_code = 409


class RemoteFailure(HabitlogError):
    """The database rejected or could not complete a write or read."""

    status_code = 503


class PartialFailure(HabitlogError):
    """A chat request was accepted but its conversation was never created.

    Persisted state is inconsistent until ``repair_conversation`` runs for
    ``request_id``.
    """

    status_code = 502

    def __init__(self, message: str, request_id: str):
        super().__init__(message)
        self.request_id = request_id

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["request_id"] = self.request_id
        return detail
