"""Domain error taxonomy.

Services raise these; create_app() installs one exception handler that
turns any TaskhubError into {"detail": message} with the class's status.
"""

from typing import Optional


class TaskhubError(Exception):
    """Base class. Unexpected failures map to 500."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class InvalidInputError(TaskhubError):
    """Malformed or missing fields."""

    status_code = 400
    default_message = "Invalid input"


class InvalidUpdateFieldsError(InvalidInputError):
    default_message = "Invalid updates"


class EmailTakenError(InvalidInputError):
    default_message = "Email already registered"


class UnsupportedImageFormatError(InvalidInputError):
    default_message = "Please upload a jpg, jpeg or png image"


class InvalidCredentialsError(TaskhubError):
    """Login failure. Same message whether the email or the password is wrong."""

    status_code = 400
    default_message = "Unable to login"


class UnauthorizedError(TaskhubError):
    status_code = 401
    default_message = "Please authenticate"


class NotFoundError(TaskhubError):
    """Missing resource — or one owned by someone else."""

    status_code = 404
    default_message = "Not found"


class PersistenceError(TaskhubError):
    status_code = 500
    default_message = "Could not save changes"
