"""Coordinates the blob store and the ``proposal_file_links`` table.

Ordering rule: bytes are written to the blob store first and the link row is
upserted only after the write returns. A failure in between leaves an
unreferenced blob, never a reference to a missing blob. Blob I/O runs in the
threadpool after the session's transaction has been ended, so no database
connection is held across it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import NotFoundError, StorageError, ValidationError
from app.core.permissions import Actor
from app.models.proposal import Proposal
from app.models.proposal_file_link import ProposalFileLink
from app.schemas.proposals import DocumentType
from app.services import audit
from app.services.proposal_store import get_accessible_proposal, utcnow
from app.services.storage.adapter import BlobStoreError, StorageAdapter
from app.services.storage.key_generator import KeyGenerator
from app.services.uploads import ValidatedUpload

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResolvedFile:
    stream: Iterator[bytes]
    content_type: str
    original_name: str
    size: int | None = None


def parse_document_type(value: DocumentType | str) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        message = f"Unknown document type: {value}"
        raise ValidationError(
            message,
            code="unknown_document_type",
            errors=[
                {
                    "loc": ["document_type"],
                    "msg": message,
                    "type": "value_error",
                    "allowed": [item.value for item in DocumentType],
                }
            ],
        ) from None


def file_entry(blob_key: str, upload: ValidatedUpload) -> dict[str, Any]:
    return {
        "blob_key": blob_key,
        "original_name": upload.filename,
        "size": upload.size,
        "mime_type": upload.content_type,
        "uploaded_at": utcnow().isoformat(),
    }


async def write_blobs(storage: StorageAdapter, items: Iterable[tuple[str, ValidatedUpload]]) -> list[str]:
    """Write each ``(key, upload)``; on failure delete what this call wrote and raise."""
    written: list[str] = []
    for key, upload in items:
        try:
            await run_in_threadpool(storage.put_object, key, upload.data, upload.content_type)
        except (BlobStoreError, ValueError) as exc:
            logger.error(
                "Blob write failed for %s",
                key,
                exc_info=True,
                extra={"blob_key": key, "reason": "blob_write_failed"},
            )
            await discard_blobs(storage, written)
            raise StorageError() from exc
        written.append(key)
    return written


async def discard_blobs(storage: StorageAdapter, keys: Iterable[str]) -> list[str]:
    """Best-effort delete. Failures are logged and the remaining keys still processed."""
    failed: list[str] = []
    for key in keys:
        try:
            await run_in_threadpool(storage.delete_object, key)
        except (BlobStoreError, ValueError):
            failed.append(key)
            logger.warning(
                "Blob delete failed for %s; left for garbage collection",
                key,
                exc_info=True,
                extra={"blob_key": key, "reason": "blob_delete_failed"},
            )
    return failed


class FileLinker:
    def __init__(self, db: AsyncSession, storage: StorageAdapter) -> None:
        self.db = db
        self.storage = storage

    async def get_link(self, proposal_uuid: str) -> ProposalFileLink | None:
        stmt = (
            select(ProposalFileLink)
            .where(ProposalFileLink.proposal_id == proposal_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _prepare(
        self, proposal_id: str, actor: Actor | None
    ) -> tuple[Proposal, dict[str, Any]]:
        proposal = await get_accessible_proposal(self.db, proposal_id, actor)
        link = await self.get_link(proposal.uuid)
        previous = dict(link.files or {}) if link else {}
        # End the read transaction before any blob I/O
        await self.db.commit()
        return proposal, previous

    async def _upsert_link(self, proposal: Proposal, entries: dict[str, Any]) -> ProposalFileLink:
        stmt = pg_insert(ProposalFileLink).values(
            proposal_id=proposal.uuid,
            organization_name=proposal.organization_name,
            files=entries,
            version=1,
        )
        stmt = (
            stmt.on_conflict_do_update(
                index_elements=[ProposalFileLink.proposal_id],
                set_={
                    # jsonb || replaces only the document types in this request
                    "files": ProposalFileLink.files.op("||")(stmt.excluded.files),
                    "organization_name": stmt.excluded.organization_name,
                    "version": ProposalFileLink.version + 1,
                    "updated_at": func.now(),
                },
            )
            .returning(ProposalFileLink)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _lock_proposal(self, proposal: Proposal) -> bool:
        """Row-lock the owning proposal so a concurrent delete cannot interleave with the upsert."""
        stmt = select(Proposal.id).where(Proposal.uuid == proposal.uuid).with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _link(
        self, proposal: Proposal, entries: dict[str, Any], written: list[str], *, discard_on_failure: bool
    ) -> ProposalFileLink:
        try:
            if not await self._lock_proposal(proposal):
                await self.db.rollback()
                logger.warning(
                    "Proposal %s was deleted during upload; discarding fresh blobs",
                    proposal.uuid,
                    extra={"proposal_id": proposal.uuid, "reason": "proposal_not_found"},
                )
                await discard_blobs(self.storage, written)
                raise NotFoundError("Proposal not found", reason="proposal_not_found")
            link = await self._upsert_link(proposal, entries)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            if discard_on_failure:
                await discard_blobs(self.storage, written)
            else:
                logger.error(
                    "File link upsert failed for proposal %s; blob left unreferenced",
                    proposal.uuid,
                    exc_info=True,
                    extra={"proposal_id": proposal.uuid, "blob_key": written[0] if written else None},
                )
            raise StorageError() from exc
        return link

    async def _release_replaced(self, previous: dict[str, Any], entries: dict[str, Any]) -> None:
        stale = [
            previous[doc_type]["blob_key"]
            for doc_type, entry in entries.items()
            if doc_type in previous and previous[doc_type].get("blob_key") not in (None, entry["blob_key"])
        ]
        await discard_blobs(self.storage, stale)

    async def attach_file(
        self,
        proposal_id: str,
        document_type: DocumentType | str,
        upload: ValidatedUpload,
        *,
        actor: Actor | None = None,
    ) -> ProposalFileLink:
        doc_type = parse_document_type(document_type)
        proposal, previous = await self._prepare(proposal_id, actor)

        key = KeyGenerator.generate_object_key(
            proposal.uuid, proposal.organization_name, doc_type.value, upload.extension
        )
        written = await write_blobs(self.storage, [(key, upload)])
        entries = {doc_type.value: file_entry(key, upload)}
        link = await self._link(proposal, entries, written, discard_on_failure=False)
        await self._release_replaced(previous, entries)

        await audit.audit_writer.append(
            proposal.uuid,
            "file_uploaded",
            actor.id if actor else None,
            {"document_type": doc_type.value, "blob_key": key, "original_name": upload.filename, "size": upload.size},
        )
        return link

    async def attach_files(
        self,
        proposal_id: str,
        uploads: dict[DocumentType | str, ValidatedUpload],
        *,
        actor: Actor | None = None,
    ) -> ProposalFileLink:
        """All-or-nothing: any blob or link failure deletes every blob written here."""
        if not uploads:
            raise ValidationError(
                "At least one file is required",
                errors=[{"loc": ["files"], "msg": "At least one file is required", "type": "missing"}],
            )
        typed = {parse_document_type(doc_type).value: upload for doc_type, upload in uploads.items()}
        proposal, previous = await self._prepare(proposal_id, actor)

        keyed = [
            (
                KeyGenerator.generate_object_key(
                    proposal.uuid, proposal.organization_name, doc_type, upload.extension
                ),
                doc_type,
                upload,
            )
            for doc_type, upload in typed.items()
        ]
        written = await write_blobs(self.storage, [(key, upload) for key, _, upload in keyed])
        entries = {doc_type: file_entry(key, upload) for key, doc_type, upload in keyed}
        link = await self._link(proposal, entries, written, discard_on_failure=True)
        await self._release_replaced(previous, entries)

        await audit.audit_writer.append(
            proposal.uuid,
            "file_uploaded",
            actor.id if actor else None,
            {
                "document_types": sorted(entries),
                "blob_keys": [key for key, _, _ in keyed],
            },
        )
        return link

    async def list_files(self, proposal_id: str, *, actor: Actor | None = None) -> dict[str, Any]:
        proposal = await get_accessible_proposal(self.db, proposal_id, actor)
        link = await self.get_link(proposal.uuid)
        return dict(link.files or {}) if link else {}

    async def resolve_file(
        self,
        proposal_id: str,
        document_type: DocumentType | str,
        *,
        actor: Actor | None = None,
    ) -> ResolvedFile:
        doc_type = parse_document_type(document_type)
        proposal = await get_accessible_proposal(self.db, proposal_id, actor)
        link = await self.get_link(proposal.uuid)
        entry = (link.files or {}).get(doc_type.value) if link else None
        await self.db.commit()
        if not entry or not entry.get("blob_key"):
            raise NotFoundError(
                f"No {doc_type.value} document linked to this proposal",
                reason="file_link_not_found",
            )

        key = entry["blob_key"]
        try:
            exists = await run_in_threadpool(self.storage.object_exists, key)
            if not exists:
                logger.warning(
                    "Linked blob %s is missing",
                    key,
                    extra={"proposal_id": proposal.uuid, "blob_key": key, "reason": "blob_not_found"},
                )
                raise NotFoundError("Document content is missing", reason="blob_not_found")
            stream = await run_in_threadpool(self.storage.iter_object, key)
        except BlobStoreError as exc:
            raise StorageError() from exc
        return ResolvedFile(
            stream=stream,
            content_type=entry.get("mime_type") or "application/octet-stream",
            original_name=entry.get("original_name") or key.rsplit("/", 1)[-1],
            size=entry.get("size"),
        )

    async def remove_file(
        self,
        proposal_id: str,
        document_type: DocumentType | str,
        *,
        actor: Actor | None = None,
    ) -> None:
        doc_type = parse_document_type(document_type)
        proposal = await get_accessible_proposal(self.db, proposal_id, actor)
        link = await self.get_link(proposal.uuid)
        entry = (link.files or {}).get(doc_type.value) if link else None
        if not entry:
            await self.db.rollback()
            raise NotFoundError(
                f"No {doc_type.value} document linked to this proposal",
                reason="file_link_not_found",
            )

        stmt = (
            update(ProposalFileLink)
            .where(
                ProposalFileLink.proposal_id == proposal.uuid,
                ProposalFileLink.files.has_key(doc_type.value),
            )
            .values(
                files=ProposalFileLink.files.op("-")(doc_type.value),
                version=ProposalFileLink.version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            await self.db.rollback()
            raise NotFoundError(
                f"No {doc_type.value} document linked to this proposal",
                reason="file_link_not_found",
            )
        await self.db.commit()

        # The reference is gone; the blob is now garbage even if this delete fails
        await discard_blobs(self.storage, [entry["blob_key"]])
        await audit.audit_writer.append(
            proposal.uuid,
            "file_deleted",
            actor.id if actor else None,
            {"document_type": doc_type.value, "blob_key": entry["blob_key"]},
        )

    async def release_all(self, proposal_uuid: str, *, extra_keys: Iterable[str] = ()) -> list[str]:
        """Drop the link row, commit the session, then delete every referenced blob.

        Commits whatever the caller has pending in the same transaction, which is
        how proposal deletion removes the record and its links atomically.
        """
        link = await self.get_link(proposal_uuid)
        keys = [entry["blob_key"] for entry in (link.files or {}).values() if entry.get("blob_key")] if link else []
        keys.extend(key for key in extra_keys if key)
        await self.db.execute(
            delete(ProposalFileLink).where(ProposalFileLink.proposal_id == proposal_uuid)
        )
        await self.db.commit()
        failed = await discard_blobs(self.storage, keys)
        if failed:
            logger.warning(
                "%s blob(s) of deleted proposal %s could not be released",
                len(failed),
                proposal_uuid,
                extra={"proposal_id": proposal_uuid, "reason": "blob_delete_failed"},
            )
        return keys
