"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; ``paperstats.main`` turns them into the
``{"error": {...}}`` envelope. Validation and authorization errors are raised
before any write, storage errors always propagate.
"""
from typing import Any, Dict, Optional


class PaperStatsError(Exception):
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "type": self.error_type}


class ValidationError(PaperStatsError):
    """Malformed input. ``field`` names the offending input."""

    status_code = 422
    error_type = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["field"] = self.field
        return body


class UnauthorizedError(PaperStatsError):
    status_code = 401
    error_type = "unauthorized"


class NotFoundError(PaperStatsError):
    status_code = 404
    error_type = "not_found"


class PlanLimitError(PaperStatsError):
    """Feature needs a paid plan, or the plan's paper quota is used up."""

    status_code = 403
    error_type = "plan_limit"


class StorageError(PaperStatsError):
    status_code = 503
    error_type = "storage_error"
