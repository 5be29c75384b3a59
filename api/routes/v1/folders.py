"""
api/routes/v1/folders.py -- Folder and file routes for the FolderVault REST API.

Routes:
  GET    /folders                    -- list the caller's folders, files attached
  POST   /folders                    -- create a folder
  GET    /folders/{folder_id}        -- one folder with its files
  DELETE /folders/{folder_id}        -- delete folder, its files and their payloads
  GET    /folders/{folder_id}/files  -- list files of a folder
  POST   /folders/{folder_id}/files  -- upload a file (multipart field "file")
  GET    /files/{file_id}            -- download a payload
  DELETE /files/{file_id}            -- delete one file

Every route requires a session (router-level guard) and passes the
principal's id into FolderStore / FileUploadPipeline, which re-check
ownership on each call. Someone else's folder or file is a 404, never a 403.

Uploads: a request whose Content-Length is clearly above the ceiling is
rejected with 413 in api/main.py before the multipart body is parsed.
Otherwise Starlette spools the part to a temporary file, and at most
MAX_UPLOAD_BYTES + 1 bytes of it are read into memory for the pipeline,
which does blocking disk and DB I/O and runs in the thread pool.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request, UploadFile
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter, upload_limit
from api.models import FolderCreate, FolderResponse, StoredFileResponse
from auth.dependencies import get_current_principal, refresh_session_cookie
from auth.models import Principal
from core.errors import NotFound
from storage.folders import FolderStore
from storage.uploads import FileUploadPipeline

logger = logging.getLogger("foldervault.api")

router = APIRouter(dependencies=[Depends(get_current_principal)])


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


@router.get("/folders", response_model=list[FolderResponse])
def list_folders(request: Request, principal: Principal = Depends(get_current_principal)) -> list[FolderResponse]:
    folders: FolderStore = request.app.state.folders
    return [FolderResponse.from_folder(f) for f in folders.list(principal.id)]


@router.post("/folders", response_model=FolderResponse, status_code=201)
def create_folder(
    request: Request,
    body: FolderCreate,
    principal: Principal = Depends(get_current_principal),
) -> FolderResponse:
    """Create a folder. Names need not be unique."""
    folders: FolderStore = request.app.state.folders
    return FolderResponse.from_folder(folders.create(principal.id, body.name))


@router.get("/folders/{folder_id}", response_model=FolderResponse)
def get_folder(
    request: Request,
    folder_id: int,
    principal: Principal = Depends(get_current_principal),
) -> FolderResponse:
    folders: FolderStore = request.app.state.folders
    return FolderResponse.from_folder(folders.get(principal.id, folder_id))


@router.delete("/folders/{folder_id}", status_code=204)
def delete_folder(
    request: Request,
    folder_id: int,
    principal: Principal = Depends(get_current_principal),
) -> None:
    """Delete a folder. Its directory goes first; metadata only if that succeeded."""
    folders: FolderStore = request.app.state.folders
    folders.delete(principal.id, folder_id)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@router.get("/folders/{folder_id}/files", response_model=list[StoredFileResponse])
def list_files(
    request: Request,
    folder_id: int,
    principal: Principal = Depends(get_current_principal),
) -> list[StoredFileResponse]:
    folders: FolderStore = request.app.state.folders
    return [StoredFileResponse.from_record(f) for f in folders.list_files(principal.id, folder_id)]


@limiter.limit(upload_limit)
@router.post("/folders/{folder_id}/files", response_model=StoredFileResponse, status_code=201)
async def upload_file(
    request: Request,
    folder_id: int,
    file: UploadFile,
    principal: Principal = Depends(get_current_principal),
) -> StoredFileResponse:
    """Upload one file into a folder the caller owns.

    Allowed types: image/jpeg, image/png, image/gif, application/pdf.
    415 for any other type, 413 above the size ceiling, 404 for a folder
    the caller does not own.
    """
    pipeline: FileUploadPipeline = request.app.state.uploads
    try:
        payload = await file.read(pipeline.max_bytes + 1)
    finally:
        await file.close()
    record = await run_in_threadpool(
        pipeline.upload,
        principal.id,
        folder_id,
        file.filename or "",
        file.content_type,
        payload,
    )
    return StoredFileResponse.from_record(record)


@router.get("/files/{file_id}")
def download_file(
    request: Request,
    file_id: int,
    principal: Principal = Depends(get_current_principal),
) -> FileResponse:
    folders: FolderStore = request.app.state.folders
    record = folders.get_file(principal.id, file_id)
    if not Path(record.path).is_file():
        logger.warning("File %d has no payload at %s", record.id, record.path)
        raise NotFound("File not found.")
    resp = FileResponse(record.path, media_type=record.content_type, filename=record.name)
    refresh_session_cookie(request, resp)
    return resp


@router.delete("/files/{file_id}", status_code=204)
def delete_file(
    request: Request,
    file_id: int,
    principal: Principal = Depends(get_current_principal),
) -> None:
    folders: FolderStore = request.app.state.folders
    folders.delete_file(principal.id, file_id)
