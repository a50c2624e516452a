from typing import Optional


class QueryServiceError(Exception):
    """Base error carrying the HTTP status and the public message sent to clients."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail


class AuthError(QueryServiceError):
    status_code = 401
    message = "Unauthorized"


class FilterValidationError(QueryServiceError):
    status_code = 400
    message = "Invalid filter value"

    def __init__(self, param: str, value: str, reason: str = "must be a number"):
        super().__init__(f"{param}: {reason} (got {value!r})")
        self.param = param
        self.value = value


class DataSourceError(QueryServiceError):
    status_code = 500
    message = "Database query failed"


class PoolExhaustedError(QueryServiceError):
    status_code = 503
    message = "Database is busy, try again later"


class QueryTimeoutError(QueryServiceError):
    status_code = 504
    message = "Database query timed out"
