from __future__ import annotations

from noteshelf.cache import CollectionCache
from noteshelf.config import Settings
from noteshelf.dependencies import get_service, get_settings
from noteshelf.dialog import (
    Adding,
    Cancel,
    DialogController,
    DialogState,
    Edit,
    EditDraft,
    Editing,
    OpenAdd,
    OpenEdit,
    OpenView,
    Viewing,
)
from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import ExportError, InvalidTransition
from noteshelf.domain.ports import DocumentRenderer, RemoteNoteService
from noteshelf.domain.schemas import ExportOptions
from noteshelf.export.pipeline import ExportArtifact, ExportPipeline
from noteshelf.mutations import MutationCoordinator, MutationResult
from noteshelf.remote.http_service import HttpNoteService


class NotesSession:
    """One user's notes workspace: cache, intents, dialog and export wired together."""

    def __init__(
        self,
        service: RemoteNoteService,
        *,
        settings: Settings | None = None,
        renderer: DocumentRenderer | None = None,
    ) -> None:
        self.service = service
        stale_after_s = settings.cache_stale_s if settings else 0.0
        self.cache = CollectionCache(service, stale_after_s=stale_after_s)
        self.dialog = DialogController()
        self.mutations = MutationCoordinator(service, self.cache, self.dialog)
        default_options = None
        export_dir = None
        if settings is not None:
            default_options = ExportOptions(
                include_timestamp=settings.export_include_timestamp,
                theme=settings.export_theme,
            )
            export_dir = settings.export_dir
        self.exporter = ExportPipeline(
            renderer,
            cache=self.cache,
            export_dir=export_dir,
            default_options=default_options,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, *, renderer: DocumentRenderer | None = None
    ) -> "NotesSession":
        """Session talking HTTP to the configured notes API."""
        if settings is None:
            return cls(get_service(), settings=get_settings(), renderer=renderer)
        service = HttpNoteService(settings.api_base_url, timeout_s=settings.api_timeout_s)
        return cls(service, settings=settings, renderer=renderer)

    @property
    def notes(self) -> tuple[NoteRecord, ...]:
        return self.cache.get().records

    def _note(self, note_id: int) -> NoteRecord:
        note = self.cache.find(note_id)
        if note is None:
            raise KeyError(note_id)
        return note

    def open_add(self) -> DialogState:
        return self.dialog.dispatch(OpenAdd())

    def open_edit(self, note_id: int) -> DialogState:
        note = self._note(note_id)
        if isinstance(self.dialog.state, Viewing):
            return self.dialog.dispatch(Edit(note))
        return self.dialog.dispatch(OpenEdit(note))

    def open_view(self, note_id: int) -> DialogState:
        return self.dialog.dispatch(OpenView(self._note(note_id)))

    def edit_draft(self, *, title: str | None = None, content: str | None = None) -> DialogState:
        return self.dialog.dispatch(EditDraft(title=title, content=content))

    def cancel(self) -> DialogState:
        return self.dialog.dispatch(Cancel())

    async def submit_dialog(self) -> MutationResult:
        state = self.dialog.state
        if isinstance(state, Adding):
            return await self.mutations.create(state.draft_title, state.draft_content)
        if isinstance(state, Editing):
            return await self.mutations.update(state.target_id, state.draft_title, state.draft_content)
        raise InvalidTransition(f"nothing to submit from {type(state).__name__}")

    async def delete(self, note_id: int) -> MutationResult:
        return await self.mutations.delete(note_id)

    async def export(self, note_id: int, options: ExportOptions | None = None) -> ExportArtifact:
        note = self.cache.find(note_id)
        if note is None:
            raise ExportError("note_not_found")
        return await self.exporter.export_async(note, options)
