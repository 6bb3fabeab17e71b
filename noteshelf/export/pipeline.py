from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from noteshelf.cache import CollectionCache
from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import ExportError
from noteshelf.domain.ports import DocumentRenderer
from noteshelf.domain.schemas import ExportOptions
from noteshelf.export.renderer import ReportLabRenderer
from noteshelf.util import atomic_write_bytes, export_stem

logger = logging.getLogger("noteshelf.export")


@dataclass(frozen=True)
class DocumentSource:
    title: str
    body: str
    timestamp: datetime | None


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    data: bytes
    media_type: str = "application/pdf"


def build_document_source(note: NoteRecord, options: ExportOptions) -> DocumentSource:
    # Content is markdown and goes through untouched.
    body = f"# {note.title}\n\n{note.content}"
    return DocumentSource(
        title=options.title or note.title,
        body=body,
        timestamp=note.updated_at if options.include_timestamp else None,
    )


def export_filename(note: NoteRecord) -> str:
    return f"{export_stem(note.id, note.title)}.pdf"


def _check_required(note: NoteRecord | None) -> NoteRecord:
    if note is None:
        raise ExportError("note_missing")
    note_id = getattr(note, "id", None)
    title = getattr(note, "title", None)
    if not isinstance(note_id, int) or note_id <= 0:
        raise ExportError("note_missing_id")
    if not isinstance(title, str) or not title.strip():
        raise ExportError("note_missing_title")
    if not isinstance(getattr(note, "content", None), str):
        raise ExportError("note_missing_content")
    return note


class ExportPipeline:
    """Note to PDF artifact. Reads notes, never writes them."""

    def __init__(
        self,
        renderer: DocumentRenderer | None = None,
        *,
        cache: CollectionCache | None = None,
        export_dir: Path | None = None,
        default_options: ExportOptions | None = None,
    ) -> None:
        self.renderer = renderer or ReportLabRenderer()
        self.cache = cache
        self.export_dir = export_dir
        self.default_options = default_options or ExportOptions()

    def export(self, note: NoteRecord | None, options: ExportOptions | None = None) -> ExportArtifact:
        options = options or self.default_options
        note = _check_required(note)
        start = time.perf_counter()
        try:
            source = build_document_source(note, options)
            filename = export_filename(note)
            data = self.renderer.render(source.title, source.body, options, timestamp=source.timestamp)
        except Exception as e:
            logger.warning("export_failed", extra={"note_id": note.id, "error": repr(e)})
            raise ExportError("render_failed") from e

        if not data:
            raise ExportError("render_empty")
        logger.info(
            "export",
            extra={
                "note_id": note.id,
                "artifact": filename,
                "bytes": len(data),
                "ms": (time.perf_counter() - start) * 1000.0,
            },
        )
        return ExportArtifact(filename=filename, data=data)

    def export_by_id(self, note_id: int, options: ExportOptions | None = None) -> ExportArtifact:
        if self.cache is None:
            raise ExportError("cache_not_configured")
        note = self.cache.find(note_id)
        if note is None:
            raise ExportError("note_not_found")
        return self.export(note, options)

    async def export_async(self, note: NoteRecord | None, options: ExportOptions | None = None) -> ExportArtifact:
        return await asyncio.to_thread(self.export, note, options)

    def save(self, artifact: ExportArtifact, directory: Path | None = None) -> Path:
        target_dir = directory or self.export_dir
        if target_dir is None:
            raise ExportError("export_dir_not_configured")
        path = Path(target_dir) / artifact.filename
        try:
            atomic_write_bytes(path, artifact.data)
        except OSError as e:
            raise ExportError("write_failed") from e
        logger.info("export_saved", extra={"path": str(path), "bytes": len(artifact.data)})
        return path
