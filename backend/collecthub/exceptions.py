"""Service-layer errors mapped to HTTP responses in main.py."""


class CollectError(Exception):
    """Base error for collect operations (HTTP 400)."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CollectError):
    status_code = 404


class InvalidStateError(CollectError):
    """Operation not legal for the entity's current status."""

    status_code = 409
