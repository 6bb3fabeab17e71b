from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import RemoteError
from noteshelf.store import InMemoryNoteStore


class TickingClock:
    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeNoteService:
    """Async notes service backed by the in-memory store.

    ``hold()`` makes every call wait until ``release()``, ``hold_lists()`` only
    list calls; ``fail_next`` makes the named operation raise once. Lists
    return the collection as it was when the request went out.
    """

    def __init__(self) -> None:
        self.store = InMemoryNoteStore(clock=TickingClock())
        self.calls: list[tuple] = []
        self.fail_next: dict[str, Exception] = {}
        self._gate: asyncio.Event | None = None
        self._list_gate: asyncio.Event | None = None

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def hold_lists(self) -> None:
        self._list_gate = asyncio.Event()

    def release(self) -> None:
        for gate in (self._gate, self._list_gate):
            if gate is not None:
                gate.set()
        self._gate = None
        self._list_gate = None

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    async def _enter(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        gate = self._gate
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        error = self.fail_next.pop(name, None)
        if error is not None:
            raise error

    async def list_notes(self) -> list[NoteRecord]:
        records = self.store.list()
        gate = self._list_gate
        await self._enter("list")
        if gate is not None:
            await gate.wait()
        return records

    async def create_note(self, title: str, content: str) -> NoteRecord:
        await self._enter("create", title, content)
        return self.store.create(title, content)

    async def update_note(self, note_id: int, title: str, content: str) -> NoteRecord:
        await self._enter("update", note_id, title, content)
        try:
            return self.store.update(note_id, title, content)
        except KeyError as e:
            raise RemoteError("remote_http_404", status=404, detail="note_not_found") from e

    async def delete_note(self, note_id: int) -> None:
        await self._enter("delete", note_id)
        try:
            self.store.delete(note_id)
        except KeyError as e:
            raise RemoteError("remote_http_404", status=404, detail="note_not_found") from e


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def service() -> FakeNoteService:
    return FakeNoteService()
