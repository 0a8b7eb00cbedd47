"""Domain errors raised by the lifecycle and storage layers.

Each error carries the HTTP status the API answers with; ``app`` turns them
into ``{"message": ...}`` JSON bodies.
"""


class HarvestShareError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(HarvestShareError):
    status_code = 400


class Conflict(HarvestShareError):
    # duplicates are reported as bad requests, same as other client errors
    status_code = 400


class InvalidTransition(HarvestShareError):
    status_code = 400


class AuthenticationFailed(HarvestShareError):
    status_code = 401


class PermissionDenied(HarvestShareError):
    status_code = 403


class NotFound(HarvestShareError):
    status_code = 404
