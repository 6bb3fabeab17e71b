import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from noteshelf.dependencies import get_store
from noteshelf.domain.schemas import NoteOut, NoteWriteIn
from noteshelf.store import InMemoryNoteStore

router = APIRouter()
logger = logging.getLogger("noteshelf.api")


def _rid(request: Request) -> str:
    return getattr(request.state, "request_id", "")


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/notes", response_model=list[NoteOut])
def list_notes(store: InMemoryNoteStore = Depends(get_store)):
    return [NoteOut.from_record(r) for r in store.list()]


@router.post("/notes", response_model=NoteOut, status_code=201)
def create_note(
    payload: NoteWriteIn,
    request: Request,
    store: InMemoryNoteStore = Depends(get_store),
):
    record = store.create(payload.title, payload.content)
    logger.info("note_create", extra={"rid": _rid(request), "id": record.id})
    return NoteOut.from_record(record)


@router.put("/notes/{note_id}", response_model=NoteOut)
def update_note(
    payload: NoteWriteIn,
    request: Request,
    note_id: int = Path(gt=0),
    store: InMemoryNoteStore = Depends(get_store),
):
    try:
        record = store.update(note_id, payload.title, payload.content)
    except KeyError as e:
        raise HTTPException(status_code=404, detail="note_not_found") from e
    logger.info("note_update", extra={"rid": _rid(request), "id": note_id})
    return NoteOut.from_record(record)


@router.delete("/notes/{note_id}", status_code=204)
def delete_note(
    request: Request,
    note_id: int = Path(gt=0),
    store: InMemoryNoteStore = Depends(get_store),
):
    try:
        store.delete(note_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail="note_not_found") from e
    logger.info("note_delete", extra={"rid": _rid(request), "id": note_id})
    return Response(status_code=204)
