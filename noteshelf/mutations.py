from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Literal, Optional

from noteshelf.cache import CollectionCache
from noteshelf.dialog import Adding, DialogController, Editing, SubmitFailed, SubmitSucceeded
from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import NoteshelfError, RemoteError, ValidationError
from noteshelf.domain.ports import RemoteNoteService

logger = logging.getLogger("noteshelf.mutations")

IntentKind = Literal["create", "update", "delete"]
IntentKey = tuple[object, ...]


class IntentStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class IntentState:
    kind: IntentKind
    note_id: Optional[int] = None
    status: IntentStatus = IntentStatus.IDLE
    error: Optional[NoteshelfError] = None

    @property
    def pending(self) -> bool:
        return self.status is IntentStatus.PENDING


@dataclass(frozen=True)
class MutationResult:
    kind: IntentKind
    ok: bool
    note_id: Optional[int] = None
    record: Optional[NoteRecord] = None
    error: Optional[NoteshelfError] = None
    deduplicated: bool = False

    @property
    def message(self) -> str:
        if self.ok:
            return f"note_{self.kind}d"
        return str(self.error) if self.error else "unknown_error"


IntentListener = Callable[[IntentState], None]


def _intent_key(kind: IntentKind, note_id: Optional[int]) -> IntentKey:
    return (kind,) if note_id is None else (kind, note_id)


class MutationCoordinator:
    """Runs create/update/delete intents against the remote service.

    Validation and remote failures come back as ``MutationResult`` values.
    Successful intents refetch the whole collection and close the dialog.
    """

    def __init__(
        self,
        service: RemoteNoteService,
        cache: CollectionCache,
        dialog: DialogController | None = None,
    ) -> None:
        self.service = service
        self.cache = cache
        self.dialog = dialog
        self._states: dict[IntentKey, IntentState] = {}
        self._inflight: dict[IntentKey, asyncio.Task[MutationResult]] = {}
        self._pending: dict[IntentKey, int] = {}
        self._listeners: list[IntentListener] = []

    def state(self, kind: IntentKind, note_id: Optional[int] = None) -> IntentState:
        key = _intent_key(kind, note_id)
        return self._states.get(key) or IntentState(kind=kind, note_id=note_id)

    def is_pending(self, kind: IntentKind, note_id: Optional[int] = None) -> bool:
        return self.state(kind, note_id).pending

    def subscribe(self, listener: IntentListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def create(self, title: str, content: str) -> MutationResult:
        if not title.strip():
            return self._rejected("create", None, ValidationError("title_required"))
        return await self._run(
            "create", None, (title, content), lambda: self.service.create_note(title, content)
        )

    async def update(self, note_id: Optional[int], title: str, content: str) -> MutationResult:
        if note_id is None:
            raise TypeError("update requires a target note id")
        if not title.strip():
            return self._rejected("update", note_id, ValidationError("title_required"))
        return await self._run(
            "update", note_id, (title, content), lambda: self.service.update_note(note_id, title, content)
        )

    async def delete(self, note_id: int) -> MutationResult:
        if self.cache.has_loaded and self.cache.find(note_id) is None:
            return self._rejected("delete", note_id, ValidationError("note_not_found"))
        return await self._run("delete", note_id, (), lambda: self.service.delete_note(note_id))

    def _rejected(self, kind: IntentKind, note_id: Optional[int], error: ValidationError) -> MutationResult:
        logger.info("mutation_rejected", extra={"kind": kind, "note_id": note_id, "reason": error.reason})
        return MutationResult(kind=kind, ok=False, note_id=note_id, error=error)

    async def _run(
        self,
        kind: IntentKind,
        note_id: Optional[int],
        payload: tuple[str, ...],
        call: Callable[[], Awaitable[Optional[NoteRecord]]],
    ) -> MutationResult:
        key = _intent_key(kind, note_id)
        flight_key = key + payload
        task = self._inflight.get(flight_key)
        if task is not None:
            logger.info("mutation_deduplicated", extra={"kind": kind, "note_id": note_id})
            result = await asyncio.shield(task)
            return replace(result, deduplicated=True)

        # Two different edits of one note in flight would race on the server.
        if kind == "update" and self._pending.get(key):
            return self._rejected(kind, note_id, ValidationError("update_in_progress"))

        self._pending[key] = self._pending.get(key, 0) + 1
        self._set_state(key, IntentState(kind=kind, note_id=note_id, status=IntentStatus.PENDING))
        task = asyncio.ensure_future(self._execute(kind, note_id, flight_key, call))
        self._inflight[flight_key] = task
        # Callers that stop waiting do not cancel the intent.
        return await asyncio.shield(task)

    async def _execute(
        self,
        kind: IntentKind,
        note_id: Optional[int],
        flight_key: IntentKey,
        call: Callable[[], Awaitable[Optional[NoteRecord]]],
    ) -> MutationResult:
        key = _intent_key(kind, note_id)
        try:
            try:
                record = await call()
            except Exception as e:
                error = e if isinstance(e, RemoteError) else RemoteError("remote_request_failed", detail=repr(e))
                if error is not e:
                    error.__cause__ = e
                logger.warning(
                    "mutation_failed",
                    extra={"kind": kind, "note_id": note_id, "reason": error.reason, "status": error.status},
                )
                self._finish(key, IntentState(kind=kind, note_id=note_id, status=IntentStatus.FAILED, error=error))
                self._signal_dialog(kind, note_id, SubmitFailed())
                return MutationResult(kind=kind, ok=False, note_id=note_id, error=error)

            resolved_id = record.id if record is not None else note_id
            logger.info("mutation_succeeded", extra={"kind": kind, "note_id": resolved_id})
            written = self.cache.record_write()
            await self.cache.invalidate_and_refresh(after_write=written)
            self._finish(key, IntentState(kind=kind, note_id=note_id, status=IntentStatus.SETTLED))
            self._signal_dialog(kind, note_id, SubmitSucceeded())
            return MutationResult(kind=kind, ok=True, note_id=resolved_id, record=record)
        finally:
            self._inflight.pop(flight_key, None)

    def _finish(self, key: IntentKey, state: IntentState) -> None:
        remaining = self._pending.get(key, 1) - 1
        if remaining > 0:
            # Another intent under this key is still running and owns the state.
            self._pending[key] = remaining
            return
        self._pending.pop(key, None)
        self._set_state(key, state)

    def _signal_dialog(self, kind: IntentKind, note_id: Optional[int], event: SubmitSucceeded | SubmitFailed) -> None:
        if self.dialog is None:
            return
        state = self.dialog.state
        if kind == "create" and isinstance(state, Adding):
            self.dialog.dispatch(event)
        elif kind == "update" and isinstance(state, Editing) and state.target_id == note_id:
            self.dialog.dispatch(event)

    def _set_state(self, key: IntentKey, state: IntentState) -> None:
        self._states[key] = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("intent_listener_failed", extra={"kind": state.kind, "note_id": state.note_id})
