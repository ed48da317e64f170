"""Custom exceptions for the role store."""

from http import HTTPStatus


class RoleStoreError(Exception):
    """Base class for role store failures.

    :param message: Human-readable message for the caller
    :param detail: Driver message of the underlying storage error, if any
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)


class FetchError(RoleStoreError):
    """Raised when roles cannot be read from storage."""


class CreateError(RoleStoreError):
    """Raised when a role cannot be created, e.g. a duplicate name."""


class UpdateError(RoleStoreError):
    """Raised when a role cannot be updated."""


class DeleteError(RoleStoreError):
    """Raised when a delete fails for any reason other than the role being in use."""


class UpsertError(RoleStoreError):
    """Raised when a list role's permissions cannot be replaced."""


class NotFoundError(RoleStoreError):
    """Raised when an update targets a role that does not exist."""

    status_code = HTTPStatus.NOT_FOUND


class RoleInUseError(RoleStoreError):
    """Raised when deleting a role that is still assigned to users."""

    status_code = HTTPStatus.BAD_REQUEST
