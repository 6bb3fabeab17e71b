from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.schemas import ExportOptions


@runtime_checkable
class RemoteNoteService(Protocol):
    async def list_notes(self) -> list[NoteRecord]:
        ...

    async def create_note(self, title: str, content: str) -> NoteRecord:
        ...

    async def update_note(self, note_id: int, title: str, content: str) -> NoteRecord:
        ...

    async def delete_note(self, note_id: int) -> None:
        ...


@runtime_checkable
class DocumentRenderer(Protocol):
    def render(
        self, title: str, body: str, options: ExportOptions, *, timestamp: datetime | None = None
    ) -> bytes:
        ...
