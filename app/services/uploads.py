from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from app.core.exceptions import PayloadTooLargeError, ValidationError
from app.core.settings import settings


_READ_CHUNK = 1024 * 1024

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# Browsers label office files inconsistently; accept these as "unknown" and trust the extension.
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

_OLE2 = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ZIP = [b"PK\x03\x04", b"PK\x05\x06"]

# Magic byte signatures used to cross-check content against the claimed extension.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    ".pdf": [b"%PDF"],
    ".doc": [_OLE2],
    ".xls": [_OLE2],
    ".docx": _ZIP,
    ".xlsx": _ZIP,
}


@dataclass(slots=True)
class ValidatedUpload:
    filename: str
    content_type: str
    extension: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _safe_filename(filename: str | None, fallback: str) -> str:
    if not filename:
        return fallback
    return Path(filename.replace("\\", "/")).name or fallback


def _field_error(field: str, message: str, error_type: str) -> list[dict]:
    return [{"loc": [field], "msg": message, "type": error_type}]


def _validate_magic(header_bytes: bytes, ext: str, field: str) -> None:
    signatures = _MAGIC_SIGNATURES.get(ext, [])
    if not any(header_bytes.startswith(sig) for sig in signatures):
        message = f"File content does not match the expected format for '{ext}'"
        raise ValidationError(
            message, code="invalid_file_content", errors=_field_error(field, message, "file_content")
        )


def resolve_content_type(filename: str, declared: str | None, *, field: str = "file") -> tuple[str, str]:
    """Return ``(extension, content_type)`` or raise if the pair is not allowed."""
    ext = Path(filename).suffix.lower()
    expected = ALLOWED_CONTENT_TYPES.get(ext)
    if expected is None:
        message = (
            f"File type not allowed. Allowed extensions: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}"
        )
        raise ValidationError(
            message, code="unsupported_file_type", errors=_field_error(field, message, "file_type")
        )
    content_type = (declared or "").split(";")[0].strip().lower()
    if content_type not in _GENERIC_CONTENT_TYPES and content_type != expected:
        message = f"Content type {content_type} does not match extension {ext}"
        raise ValidationError(
            message, code="unsupported_file_type", errors=_field_error(field, message, "file_type")
        )
    return ext, expected


async def read_upload(
    file: UploadFile,
    *,
    field: str = "file",
    max_size_bytes: int | None = None,
) -> ValidatedUpload:
    """Read and validate one multipart file fully before anything is stored."""
    limit = settings.max_upload_size_bytes if max_size_bytes is None else max_size_bytes
    original_name = _safe_filename(file.filename, "upload.bin")
    try:
        ext, content_type = resolve_content_type(original_name, file.content_type, field=field)
        chunks: list[bytes] = []
        total = 0
        while True:
            chunk = await file.read(_READ_CHUNK)
            if not chunk:
                break
            total += len(chunk)
            if limit and total > limit:
                message = f"File exceeds maximum allowed size of {limit // (1024 * 1024)} MB"
                raise PayloadTooLargeError(
                    message, errors=_field_error(field, message, "file_size")
                )
            chunks.append(chunk)
    finally:
        await file.close()

    data = b"".join(chunks)
    if not data:
        message = "File is empty"
        raise ValidationError(message, code="empty_file", errors=_field_error(field, message, "file_size"))
    _validate_magic(data[:16], ext, field)
    return ValidatedUpload(filename=original_name, content_type=content_type, extension=ext, data=data)
