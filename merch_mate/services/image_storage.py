from __future__ import annotations

import uuid
from pathlib import Path

from merch_mate.config import settings


def extension_of(filename: str | None) -> str:
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def is_allowed_image(filename: str | None) -> bool:
    return extension_of(filename) in settings.allowed_image_extensions


def save_image(content: bytes, filename: str, *, upload_dir: Path | None = None) -> str:
    """Store an uploaded image under a generated name and return that name."""
    if not is_allowed_image(filename):
        allowed = ', '.join(sorted(settings.allowed_image_extensions))
        raise ValueError(f'Images must be one of: {allowed}')
    if not content:
        raise ValueError('Uploaded image is empty')

    target_dir = upload_dir or settings.upload_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f'{uuid.uuid4().hex}.{extension_of(filename)}'
    (target_dir / stored_name).write_bytes(content)
    return stored_name


def resolve_image(name: str, *, upload_dir: Path | None = None) -> Path:
    target_dir = (upload_dir or settings.upload_dir).resolve()
    path = (target_dir / name).resolve()
    if path.parent != target_dir or not path.is_file():
        raise LookupError('Image not found')
    return path


def discard_image(name: str, *, upload_dir: Path | None = None) -> None:
    ((upload_dir or settings.upload_dir) / name).unlink(missing_ok=True)
