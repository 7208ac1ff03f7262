"""File store for uploaded convention documents and onboarding signatures."""

from __future__ import annotations

import asyncio
import hashlib
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Protocol

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredFile:
    file_name: str
    path: str  # relative, POSIX style, leading slash
    mime: str
    size: int
    checksum: str  # sha256 hex


class FileStore(Protocol):
    async def put(self, content: bytes, mime: str, original_name: str) -> StoredFile: ...

    async def remove(self, path: str) -> None: ...


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", PurePosixPath(name.replace("\\", "/")).name).strip("._")
    return cleaned or "file"


class LocalFileStore:
    """Stores blobs under `base_dir/YYYY/MM/<uuid>-<name>`."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def resolve(self, path: str) -> Path:
        target = (self.base_dir / path.lstrip("/")).resolve()
        if not target.is_relative_to(self.base_dir.resolve()):
            raise ValueError("Path escapes storage root")
        return target

    async def put(self, content: bytes, mime: str, original_name: str) -> StoredFile:
        now = datetime.now(timezone.utc)
        file_name = f"{uuid.uuid4()}-{sanitize_filename(original_name)}"
        rel = PurePosixPath("/", f"{now.year:04d}", f"{now.month:02d}", file_name)
        target = self.resolve(str(rel))

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        await asyncio.to_thread(_write)
        return StoredFile(
            file_name=file_name,
            path=str(rel),
            mime=mime,
            size=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
        )

    async def remove(self, path: str) -> None:
        target = self.resolve(path)
        await asyncio.to_thread(target.unlink, missing_ok=True)
