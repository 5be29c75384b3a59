"""
API request and response models for FolderVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
storage/models.py, which own the internal domain representation. Route
handlers map between the two.

No response model has a password_hash field, and file responses carry a
download URL rather than the on-disk path.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.credentials import MAX_PASSWORD_BYTES
from auth.models import Principal
from storage.models import FileRecord, Folder

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Request body for POST /auth/signup and POST /auth/login.

    Email is not normalized: it is stored and compared exactly as submitted.
    bcrypt only accepts 72 bytes, so the password cap is on its UTF-8 length,
    not its character count.
    """

    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=72)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return v


class UserResponse(BaseModel):
    """Outward projection of a user: id and email, nothing else."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str

    @classmethod
    def from_principal(cls, principal: Principal) -> "UserResponse":
        return cls(id=principal.id, email=principal.email)


class AuthResponse(BaseModel):
    """Response for signup and login.

    session_token is also set as an httpOnly cookie; it is returned in the
    body for clients that send it as a Bearer header instead.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    session_token: str
    token_type: str = "bearer"
    expires_at: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Folders and files
# ---------------------------------------------------------------------------


class FolderCreate(BaseModel):
    """Request body for POST /folders. Emptiness is checked after stripping by FolderStore."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(max_length=255)


class StoredFileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    folder_id: int
    name: str
    size: int
    content_type: str
    url: str
    created_at: str

    @classmethod
    def from_record(cls, record: FileRecord) -> "StoredFileResponse":
        """Factory Method -- the mapping lives next to the output model."""
        return cls(
            id=record.id,
            folder_id=record.folder_id,
            name=record.name,
            size=record.size,
            content_type=record.content_type,
            url=f"/api/v1/files/{record.id}",
            created_at=record.created_at,
        )


class FolderResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    owner_id: int
    created_at: str
    files: list[StoredFileResponse] = Field(default_factory=list)

    @classmethod
    def from_folder(cls, folder: Folder) -> "FolderResponse":
        return cls(
            id=folder.id,
            name=folder.name,
            owner_id=folder.owner_id,
            created_at=folder.created_at,
            files=[StoredFileResponse.from_record(f) for f in folder.files],
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
