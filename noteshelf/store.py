from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from noteshelf.domain.entities import NoteRecord
from noteshelf.util import utc_now

_TICK = timedelta(microseconds=1)


class InMemoryNoteStore:
    """Server-side notes table for the reference service.

    Ids are assigned sequentially from 1 and never reused. ``updated_at``
    strictly advances on every update even when the clock does not.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._notes: dict[int, NoteRecord] = {}
        self._next_id = 1

    def list(self) -> list[NoteRecord]:
        with self._lock:
            return list(self._notes.values())

    def get(self, note_id: int) -> NoteRecord:
        with self._lock:
            try:
                return self._notes[note_id]
            except KeyError:
                raise KeyError(note_id) from None

    def create(self, title: str, content: str) -> NoteRecord:
        with self._lock:
            now = self._clock()
            record = NoteRecord(id=self._next_id, title=title, content=content, created_at=now, updated_at=now)
            self._notes[record.id] = record
            self._next_id += 1
            return record

    def update(self, note_id: int, title: str, content: str) -> NoteRecord:
        with self._lock:
            existing = self._notes.get(note_id)
            if existing is None:
                raise KeyError(note_id)
            updated_at = max(self._clock(), existing.updated_at + _TICK)
            record = NoteRecord(
                id=existing.id,
                title=title,
                content=content,
                created_at=existing.created_at,
                updated_at=updated_at,
            )
            self._notes[note_id] = record
            return record

    def delete(self, note_id: int) -> None:
        with self._lock:
            if self._notes.pop(note_id, None) is None:
                raise KeyError(note_id)
