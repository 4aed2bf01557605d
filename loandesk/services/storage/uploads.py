from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

from fastapi import UploadFile

from loandesk.core.errors import ValidationError


ALLOWED_CONTENT_TYPES: dict[str, set[str]] = {
    "application/pdf": {".pdf"},
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "application/msword": {".doc"},
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": {".docx"},
}

# Magic byte signatures used to cross-check content against the extension.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    ".pdf": [b"%PDF"],
    ".png": [b"\x89PNG\r\n\x1a\n"],
    ".jpg": [b"\xff\xd8\xff"],
    ".jpeg": [b"\xff\xd8\xff"],
    ".doc": [b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"],
    ".docx": [b"PK\x03\x04", b"PK\x05\x06"],
}

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class PreparedUpload:
    file_name: str
    content: bytes
    content_type: str
    extension: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def _safe_filename(filename: str | None, fallback: str) -> str:
    if not filename:
        return fallback
    return Path(filename).name or fallback


def _validate_magic(header_bytes: bytes, ext: str, field_name: str) -> None:
    signatures = _MAGIC_SIGNATURES.get(ext)
    if signatures and not any(header_bytes.startswith(sig) for sig in signatures):
        raise ValidationError.for_field(
            field_name, f"File content does not match the expected format for '{ext}'"
        )


async def read_upload(file: UploadFile | None, *, field_name: str, max_size_bytes: int) -> PreparedUpload:
    """Read and validate an uploaded file fully into memory."""
    if file is None or not (file.filename or "").strip():
        raise ValidationError.for_field(field_name, "File is required")

    original_name = _safe_filename(file.filename, "upload.bin")
    ext = Path(original_name).suffix.lower()
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    allowed_exts = ALLOWED_CONTENT_TYPES.get(content_type)
    if allowed_exts is None or ext not in allowed_exts:
        raise ValidationError.for_field(
            field_name, "Invalid file type. Only PDF, JPEG, PNG, DOC and DOCX files are allowed."
        )

    chunks: list[bytes] = []
    size = 0
    try:
        while True:
            chunk = await file.read(_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if max_size_bytes and size > max_size_bytes:
                raise ValidationError.for_field(
                    field_name,
                    f"File exceeds maximum allowed size of {max_size_bytes // (1024 * 1024)} MB",
                )
            chunks.append(chunk)
    finally:
        await file.close()

    content = b"".join(chunks)
    if not content:
        raise ValidationError.for_field(field_name, "File is empty")
    _validate_magic(content[:16], ext, field_name)
    return PreparedUpload(file_name=original_name, content=content, content_type=content_type, extension=ext)


def _slug(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", value).lower()


def document_object_key(application_id: UUID, document_type: str, extension: str) -> str:
    return f"applications/{application_id}/documents/{_slug(document_type)}/{uuid4().hex}{extension}"
