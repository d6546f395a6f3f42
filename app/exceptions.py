"""Error taxonomy shared by the plan store, the route adapter and the client."""


class PlanError(Exception):
    """Base class for errors surfaced to API callers."""

    error_type = "PLAN_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PlanError):
    """Stop count out of range or a missing stop reference."""

    error_type = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PlanError):
    """Plan does not exist, is inactive, or belongs to someone else."""

    error_type = "NOT_FOUND"
    status_code = 404


class ConflictError(PlanError):
    """Operation on a plan that has already expired."""

    error_type = "CONFLICT"
    status_code = 409


class ProviderError(PlanError):
    """Directions provider failed or returned no route."""

    error_type = "PROVIDER_ERROR"
    status_code = 502


class SyncError(Exception):
    """Client-side save/load against the API failed; the caller may retry."""
