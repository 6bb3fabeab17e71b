"""Single editing surface state: which dialog is open and what it targets.

``transition`` is a pure function over frozen dataclasses. ``DialogController``
wraps it with the current state and change notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import InvalidTransition

logger = logging.getLogger("noteshelf.dialog")


@dataclass(frozen=True)
class Closed:
    pass


@dataclass(frozen=True)
class Adding:
    draft_title: str = ""
    draft_content: str = ""


@dataclass(frozen=True)
class Editing:
    target_id: int
    draft_title: str
    draft_content: str


@dataclass(frozen=True)
class Viewing:
    target_id: int


DialogState = Union[Closed, Adding, Editing, Viewing]


@dataclass(frozen=True)
class OpenAdd:
    pass


@dataclass(frozen=True)
class OpenEdit:
    note: NoteRecord


@dataclass(frozen=True)
class OpenView:
    note: NoteRecord


@dataclass(frozen=True)
class Edit:
    note: NoteRecord


@dataclass(frozen=True)
class EditDraft:
    title: Optional[str] = None
    content: Optional[str] = None


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Close:
    pass


@dataclass(frozen=True)
class SubmitSucceeded:
    pass


@dataclass(frozen=True)
class SubmitFailed:
    pass


DialogEvent = Union[OpenAdd, OpenEdit, OpenView, Edit, EditDraft, Cancel, Close, SubmitSucceeded, SubmitFailed]


def _editing_from(note: NoteRecord) -> Editing:
    return Editing(target_id=note.id, draft_title=note.title, draft_content=note.content)


def transition(state: DialogState, event: DialogEvent) -> DialogState:
    if isinstance(state, Closed):
        if isinstance(event, OpenAdd):
            return Adding()
        if isinstance(event, OpenEdit):
            return _editing_from(event.note)
        if isinstance(event, OpenView):
            return Viewing(target_id=event.note.id)

    elif isinstance(state, (Adding, Editing)):
        if isinstance(event, (Cancel, SubmitSucceeded)):
            return Closed()
        if isinstance(event, SubmitFailed):
            return state
        if isinstance(event, EditDraft):
            title = state.draft_title if event.title is None else event.title
            content = state.draft_content if event.content is None else event.content
            if isinstance(state, Adding):
                return Adding(draft_title=title, draft_content=content)
            return Editing(target_id=state.target_id, draft_title=title, draft_content=content)

    elif isinstance(state, Viewing):
        if isinstance(event, (Close, Cancel)):
            return Closed()
        if isinstance(event, OpenEdit):
            return _editing_from(event.note)
        if isinstance(event, Edit):
            if event.note.id != state.target_id:
                raise InvalidTransition(f"edit_target_mismatch: viewing {state.target_id}, got {event.note.id}")
            return _editing_from(event.note)

    raise InvalidTransition(f"{type(event).__name__} not allowed from {type(state).__name__}")


DialogListener = Callable[[DialogState], None]


class DialogController:
    def __init__(self, state: DialogState | None = None) -> None:
        self._state: DialogState = state if state is not None else Closed()
        self._listeners: list[DialogListener] = []

    @property
    def state(self) -> DialogState:
        return self._state

    def subscribe(self, listener: DialogListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, event: DialogEvent) -> DialogState:
        new_state = transition(self._state, event)
        if new_state != self._state:
            logger.debug(
                "dialog_transition",
                extra={"from": type(self._state).__name__, "to": type(new_state).__name__},
            )
            self._state = new_state
            for listener in list(self._listeners):
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("dialog_listener_failed")
        return self._state
