"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``readingstats.main`` maps them to JSON error bodies.
"""

from typing import Any


class ReadingStatsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ReadingStatsError):
    """Malformed or out-of-range input. Never retried."""

    status_code = 422
    default_code = "VALIDATION_ERROR"


class NotFoundError(ReadingStatsError):
    """Referenced member, story or achievement does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class AccessDeniedError(ReadingStatsError):
    """Caller is not the owning member and is not an admin."""

    status_code = 403
    default_code = "FORBIDDEN"


class ConflictError(ReadingStatsError):
    """Request conflicts with the current state of a resource."""

    status_code = 409
    default_code = "CONFLICT"


class AlreadyClaimedError(ConflictError):
    """Achievement reward was claimed before."""

    default_code = "ALREADY_CLAIMED"

    def __init__(self, achievement_id: int):
        super().__init__(
            "Achievement reward already claimed",
            details={"achievement_id": achievement_id},
        )


class ComputationFailure(ReadingStatsError):
    """A secondary computation failed because of inconsistent data."""

    default_code = "COMPUTATION_FAILURE"
