from fastapi import HTTPException, status


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class StorageUnavailable(Exception):
    """The record database or the blob store could not be reached."""

    def __init__(self, message: str, operation: str = ""):
        self.message = message
        self.operation = operation
        super().__init__(self.message)


class RecordNotFound(Exception):
    def __init__(self, identifier: str | int):
        self.identifier = identifier
        super().__init__(f"Record not found: {identifier}")


class StatusConflict(Exception):
    """A compare-and-set status update found the record in an unexpected state."""

    def __init__(self, identifier: str | int, current: str, expected: tuple[str, ...]):
        self.identifier = identifier
        self.current = current
        self.expected = expected
        super().__init__(
            f"Record {identifier} is '{current}', expected one of {', '.join(expected)}"
        )


class UpstreamApiError(Exception):
    """PageSpeed Insights answered with a non-2xx status."""

    def __init__(self, message: str, device: str = "", status_code: int | None = None):
        self.message = message
        self.device = device
        self.status_code = status_code
        super().__init__(self.message)


class TransportError(Exception):
    """PageSpeed Insights could not be reached (DNS, connect, timeout)."""

    def __init__(self, message: str, device: str = ""):
        self.message = message
        self.device = device
        super().__init__(self.message)
