"""
Domain exceptions raised by service modules.

Routes either let these propagate (``app.main`` maps them to HTTP responses)
or raise ``fastapi.HTTPException`` directly.
"""


class CrmError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(CrmError):
    status_code = 404


class PermissionDeniedError(CrmError):
    status_code = 403


class ConflictError(CrmError):
    status_code = 409


class ValidationFailedError(CrmError):
    status_code = 400
