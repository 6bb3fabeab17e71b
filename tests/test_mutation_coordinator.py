from __future__ import annotations

import asyncio

import pytest

from noteshelf.cache import CollectionCache, Freshness
from noteshelf.dialog import Adding, Closed, DialogController, EditDraft, Editing, OpenAdd, OpenEdit
from noteshelf.domain.exceptions import RemoteError, ValidationError
from noteshelf.mutations import IntentStatus, MutationCoordinator


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _coordinator(service, dialog: DialogController | None = None) -> MutationCoordinator:
    return MutationCoordinator(service, CollectionCache(service), dialog)


@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
def test_blank_title_never_reaches_remote(service, title) -> None:
    coord = _coordinator(service)
    before = coord.cache.get()

    result = asyncio.run(coord.create(title, "content"))

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.reason == "title_required"
    assert service.calls == []
    assert coord.cache.get() is before


def test_create_refreshes_collection_and_closes_dialog(service) -> None:
    dialog = DialogController()
    dialog.dispatch(OpenAdd())
    dialog.dispatch(EditDraft(title="Groceries", content="- milk"))
    coord = _coordinator(service, dialog)

    result = asyncio.run(coord.create("Groceries", "- milk"))

    assert result.ok
    records = coord.cache.get().records
    assert len(records) == 1
    note = records[0]
    assert (note.title, note.content) == ("Groceries", "- milk")
    assert note.updated_at == note.created_at
    assert result.record == note
    assert coord.cache.get().freshness is Freshness.FRESH
    assert dialog.state == Closed()
    assert coord.state("create").status is IntentStatus.SETTLED


def test_create_remote_failure_keeps_dialog_draft(service) -> None:
    dialog = DialogController()
    dialog.dispatch(OpenAdd())
    dialog.dispatch(EditDraft(title="Draft", content="keep me"))
    coord = _coordinator(service, dialog)
    service.fail_next["create"] = RemoteError("remote_http_500", status=500, detail="boom")

    result = asyncio.run(coord.create("Draft", "keep me"))

    assert not result.ok
    assert isinstance(result.error, RemoteError)
    assert result.message == "remote_http_500: boom"
    assert dialog.state == Adding(draft_title="Draft", draft_content="keep me")
    assert coord.state("create").status is IntentStatus.FAILED
    assert service.count("list") == 0
    assert coord.cache.get().records == ()


def test_update_advances_updated_at_only(service) -> None:
    original = service.store.create("Old", "old body")
    dialog = DialogController()
    coord = _coordinator(service, dialog)

    async def scenario():
        await coord.cache.refresh()
        dialog.dispatch(OpenEdit(coord.cache.find(original.id)))
        return await coord.update(original.id, "New", "new body")

    result = asyncio.run(scenario())

    assert result.ok
    updated = coord.cache.find(original.id)
    assert (updated.title, updated.content) == ("New", "new body")
    assert updated.id == original.id
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at
    assert dialog.state == Closed()


def test_update_failure_keeps_editing_state(service) -> None:
    original = service.store.create("Old", "")
    dialog = DialogController()
    dialog.dispatch(OpenEdit(original))
    dialog.dispatch(EditDraft(title="Changed"))
    coord = _coordinator(service, dialog)
    service.fail_next["update"] = RemoteError("remote_http_409", status=409)

    result = asyncio.run(coord.update(original.id, "Changed", ""))

    assert not result.ok
    assert dialog.state == Editing(target_id=original.id, draft_title="Changed", draft_content="")


def test_update_blank_title_is_validation_error(service) -> None:
    coord = _coordinator(service)
    result = asyncio.run(coord.update(3, " ", "x"))
    assert isinstance(result.error, ValidationError)
    assert service.calls == []


def test_update_without_target_is_programming_error(service) -> None:
    coord = _coordinator(service)
    with pytest.raises(TypeError):
        asyncio.run(coord.update(None, "title", "content"))
    assert service.calls == []


def test_update_does_not_close_dialog_for_other_target(service) -> None:
    a = service.store.create("a", "")
    b = service.store.create("b", "")
    dialog = DialogController()
    dialog.dispatch(OpenEdit(a))
    coord = _coordinator(service, dialog)

    result = asyncio.run(coord.update(b.id, "b2", ""))

    assert result.ok
    assert isinstance(dialog.state, Editing)
    assert dialog.state.target_id == a.id


def test_concurrent_delete_of_same_note_calls_remote_once(service) -> None:
    note = service.store.create("gone", "")
    coord = _coordinator(service)

    async def scenario():
        await coord.cache.refresh()
        service.hold()
        first = asyncio.ensure_future(coord.delete(note.id))
        second = asyncio.ensure_future(coord.delete(note.id))
        await _settle()
        assert coord.is_pending("delete", note.id)
        service.release()
        return await asyncio.gather(first, second)

    first, second = asyncio.run(scenario())

    assert service.count("delete") == 1
    assert first.ok and second.ok
    assert not first.deduplicated
    assert second.deduplicated
    assert coord.cache.find(note.id) is None
    assert not coord.is_pending("delete", note.id)


def test_delete_unknown_id_after_load_is_rejected(service) -> None:
    coord = _coordinator(service)

    async def scenario():
        await coord.cache.refresh()
        return await coord.delete(42)

    result = asyncio.run(scenario())
    assert isinstance(result.error, ValidationError)
    assert result.error.reason == "note_not_found"
    assert service.count("delete") == 0


def test_delete_before_first_load_defers_to_remote(service) -> None:
    coord = _coordinator(service)

    result = asyncio.run(coord.delete(42))

    assert not result.ok
    assert isinstance(result.error, RemoteError)
    assert result.error.status == 404
    assert service.count("delete") == 1
    assert coord.state("delete", 42).status is IntentStatus.FAILED


def test_pending_flags_are_tracked_per_intent(service) -> None:
    a = service.store.create("a", "")
    b = service.store.create("b", "")
    coord = _coordinator(service)
    seen = []
    coord.subscribe(lambda state: seen.append((state.kind, state.note_id, state.status)))

    async def scenario():
        await coord.cache.refresh()
        service.hold()
        deleting = asyncio.ensure_future(coord.delete(a.id))
        await _settle()
        assert coord.is_pending("delete", a.id)
        assert not coord.is_pending("update", b.id)
        assert not coord.is_pending("delete", b.id)

        updating = asyncio.ensure_future(coord.update(b.id, "b2", ""))
        await _settle()
        assert coord.is_pending("update", b.id)
        service.release()
        return await asyncio.gather(deleting, updating)

    deleted, updated = asyncio.run(scenario())

    assert deleted.ok and updated.ok
    assert [r.title for r in coord.cache.get().records] == ["b2"]
    assert ("delete", a.id, IntentStatus.PENDING) in seen
    assert ("update", b.id, IntentStatus.SETTLED) in seen


def test_refresh_failure_after_success_is_kept_in_cache(service) -> None:
    coord = _coordinator(service)
    service.fail_next["list"] = RemoteError("remote_request_failed")

    result = asyncio.run(coord.create("t", "c"))

    assert result.ok
    snap = coord.cache.get()
    assert snap.freshness is Freshness.ERROR
    assert snap.error.reason == "remote_request_failed"


def test_concurrent_creates_with_different_payloads_are_all_sent(service) -> None:
    coord = _coordinator(service)

    async def scenario():
        service.hold()
        first = asyncio.ensure_future(coord.create("A", "one"))
        second = asyncio.ensure_future(coord.create("B", "two"))
        await _settle()
        assert coord.is_pending("create")
        service.release()
        return await asyncio.gather(first, second)

    first, second = asyncio.run(scenario())

    assert first.ok and second.ok
    assert not first.deduplicated
    assert not second.deduplicated
    assert service.count("create") == 2
    assert sorted(r.title for r in coord.cache.get().records) == ["A", "B"]
    assert coord.state("create").status is IntentStatus.SETTLED


def test_identical_concurrent_create_is_sent_once(service) -> None:
    coord = _coordinator(service)

    async def scenario():
        service.hold()
        first = asyncio.ensure_future(coord.create("A", "same"))
        second = asyncio.ensure_future(coord.create("A", "same"))
        await _settle()
        service.release()
        return await asyncio.gather(first, second)

    first, second = asyncio.run(scenario())

    assert service.count("create") == 1
    assert second.deduplicated
    assert second.record == first.record
    assert [r.title for r in coord.cache.get().records] == ["A"]


def test_conflicting_update_while_pending_is_rejected(service) -> None:
    note = service.store.create("orig", "")
    coord = _coordinator(service)

    async def scenario():
        service.hold()
        first = asyncio.ensure_future(coord.update(note.id, "first", ""))
        await _settle()
        second = await coord.update(note.id, "second", "")
        assert coord.is_pending("update", note.id)
        service.release()
        return await first, second

    first, second = asyncio.run(scenario())

    assert first.ok
    assert not second.ok
    assert isinstance(second.error, ValidationError)
    assert second.error.reason == "update_in_progress"
    assert service.count("update") == 1
    assert coord.cache.find(note.id).title == "first"


def test_refresh_after_write_does_not_reuse_earlier_fetch(service) -> None:
    dialog = DialogController()
    dialog.dispatch(OpenAdd())
    coord = _coordinator(service, dialog)

    async def scenario():
        service.hold_lists()
        early = asyncio.ensure_future(coord.cache.refresh())
        await _settle()
        creating = asyncio.ensure_future(coord.create("new", ""))
        await _settle()
        assert service.count("create") == 1
        assert isinstance(dialog.state, Adding)
        service.release()
        return await early, await creating

    early, result = asyncio.run(scenario())

    assert early.records == ()
    assert result.ok
    snap = coord.cache.get()
    assert snap.freshness is Freshness.FRESH
    assert [r.title for r in snap.records] == ["new"]
    assert service.count("list") == 2
    assert dialog.state == Closed()
