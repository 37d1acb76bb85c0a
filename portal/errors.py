"""Exception hierarchy mapped to JSON error responses by the handlers in main.py."""


class PortalError(Exception):
    """Base error: carries the HTTP status and an optional details payload."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class BadRequest(PortalError):
    status_code = 400


class Unauthorized(PortalError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(PortalError):
    status_code = 403


class NotFound(PortalError):
    status_code = 404


class ChildRecordError(PortalError):
    """One or more linked child records could not be created or updated."""

    status_code = 400

    def __init__(self, failures: dict[str, list[str]]):
        self.failures = failures
        summary = "; ".join(f"{field}: {', '.join(names)}" for field, names in failures.items())
        super().__init__(f"Failed to save {summary}", details={"failed": failures})


class UpstreamError(PortalError):
    """The CMS answered with a non-success status."""

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        super().__init__(message, status_code=status_code or 500, details=details)


class UpstreamPermissionError(UpstreamError):
    """Every step of the write fallback policy was rejected with 403/404."""


class UpstreamUnavailable(PortalError):
    """Network-level failure talking to the CMS."""

    status_code = 500
