"""
core/errors.py -- Domain exception taxonomy for FolderVault.

Services in auth/ and storage/ raise these; api/main.py maps every
FolderVaultError onto the ErrorResponse envelope using the code and
status_code carried by the exception. Service code never imports FastAPI.

    ValidationError   400  bad input shape (empty folder name, ...)
      UnsupportedType 415  content type outside the upload allowlist
      TooLarge        413  payload above the upload ceiling
    AuthFailure       401  login rejected -- never says which field was wrong
    Unauthenticated   401  no valid session on a protected operation
    NotFound          404  missing resource OR resource owned by someone else
    Conflict          409  unique constraint (duplicate email)
    StorageIOError    500  disk write/remove failed
    PersistenceError  500  metadata write failed
"""

from __future__ import annotations


class FolderVaultError(Exception):
    code = "error"
    status_code = 500
    message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(FolderVaultError):
    code = "validation_error"
    status_code = 400
    message = "Invalid input."


class UnsupportedType(ValidationError):
    code = "unsupported_type"
    status_code = 415
    message = "File type is not allowed."


class TooLarge(ValidationError):
    code = "file_too_large"
    status_code = 413
    message = "File is too large."


class AuthFailure(FolderVaultError):
    code = "bad_credentials"
    status_code = 401
    message = "invalid credentials"


class Unauthenticated(FolderVaultError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class NotFound(FolderVaultError):
    code = "not_found"
    status_code = 404
    message = "Not found."


class Conflict(FolderVaultError):
    code = "conflict"
    status_code = 409
    message = "Resource already exists."


class StorageIOError(FolderVaultError):
    code = "storage_error"
    status_code = 500
    message = "File storage failed."


class PersistenceError(FolderVaultError):
    code = "persistence_error"
    status_code = 500
    message = "Saving metadata failed."
