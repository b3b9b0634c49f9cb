from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import ValidationError
from app.core.permissions import PermissionCode
from app.schemas.proposals import DocumentType, FileEntryDTO, FileLinkDTO
from app.services.file_links import FileLinker
from app.services.storage.adapter import StorageAdapter
from app.services.uploads import read_upload

router = APIRouter(prefix="/proposals/{proposal_id}/files", tags=["proposal-files"])


def _content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode().replace('"', "") or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


@router.post(
    "/{document_type}",
    response_model=FileLinkDTO,
    status_code=status.HTTP_201_CREATED,
)
async def upload_file(
    proposal_id: str,
    document_type: DocumentType,
    file: UploadFile = File(...),
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.FILE_UPLOAD)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> FileLinkDTO:
    upload = await read_upload(file)
    link = await FileLinker(db, storage).attach_file(proposal_id, document_type, upload, actor=actor)
    return FileLinkDTO.model_validate(link)


@router.post("", response_model=FileLinkDTO, status_code=status.HTTP_201_CREATED)
async def upload_files(
    proposal_id: str,
    gpoa: UploadFile | None = File(default=None),
    proposal_file: UploadFile | None = File(default=None, alias="proposal"),
    accomplishment_report: UploadFile | None = File(default=None),
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.FILE_UPLOAD)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> FileLinkDTO:
    provided = {
        DocumentType.GPOA: gpoa,
        DocumentType.PROPOSAL: proposal_file,
        DocumentType.ACCOMPLISHMENT_REPORT: accomplishment_report,
    }
    files = {doc_type: upload for doc_type, upload in provided.items() if upload is not None}
    if not files:
        message = "At least one of gpoa, proposal or accomplishment_report is required"
        raise ValidationError(message, errors=[{"loc": ["files"], "msg": message, "type": "missing"}])
    # Every file is validated before any blob is written
    uploads = {
        doc_type: await read_upload(upload, field=doc_type.value)
        for doc_type, upload in files.items()
    }
    link = await FileLinker(db, storage).attach_files(proposal_id, uploads, actor=actor)
    return FileLinkDTO.model_validate(link)


@router.get("", response_model=dict[str, FileEntryDTO])
async def list_files(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.FILE_DOWNLOAD)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> dict[str, FileEntryDTO]:
    files = await FileLinker(db, storage).list_files(proposal_id, actor=actor)
    return {doc_type: FileEntryDTO.model_validate(entry) for doc_type, entry in files.items()}


@router.get("/{document_type}")
async def download_file(
    proposal_id: str,
    document_type: DocumentType,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.FILE_DOWNLOAD)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> StreamingResponse:
    resolved = await FileLinker(db, storage).resolve_file(proposal_id, document_type, actor=actor)
    headers = {"Content-Disposition": _content_disposition(resolved.original_name)}
    if resolved.size is not None:
        headers["Content-Length"] = str(resolved.size)
    return StreamingResponse(resolved.stream, media_type=resolved.content_type, headers=headers)


@router.delete("/{document_type}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    proposal_id: str,
    document_type: DocumentType,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.FILE_DELETE)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> Response:
    await FileLinker(db, storage).remove_file(proposal_id, document_type, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
