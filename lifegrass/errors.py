# lifegrass/errors.py
"""Error taxonomy shared by the service layer and the HTTP boundary.

Each error carries the HTTP status the boundary answers with and a message
that is safe to show to the client.
"""


class LifeGrassError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(LifeGrassError):
    status_code = 400
    default_message = "Invalid input"


class Unauthorized(LifeGrassError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(LifeGrassError):
    status_code = 404
    default_message = "User not found"


class Conflict(LifeGrassError):
    status_code = 409
    default_message = "Username already taken"


class UpstreamUnavailable(LifeGrassError):
    status_code = 502
    default_message = "AI request failed"


class StorageUnavailable(LifeGrassError):
    status_code = 503
    default_message = "Storage not available"


__all__ = [
    "LifeGrassError",
    "InvalidInput",
    "Unauthorized",
    "NotFound",
    "Conflict",
    "UpstreamUnavailable",
    "StorageUnavailable",
]
