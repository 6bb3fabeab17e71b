from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from pathlib import Path


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}")
    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


_SLUG_RE = re.compile(r"[^a-z0-9]")


def slugify(title: str) -> str:
    # One dash per disallowed character; runs are not merged.
    return _SLUG_RE.sub("-", title.lower())


def export_stem(note_id: int, title: str) -> str:
    return f"note-{note_id}-{slugify(title)}"
