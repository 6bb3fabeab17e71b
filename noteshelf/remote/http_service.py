from __future__ import annotations

import logging

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import RemoteError
from noteshelf.domain.schemas import NoteOut

logger = logging.getLogger("noteshelf.remote")

_NOTE_LIST = TypeAdapter(list[NoteOut])
_NOTE_ONE = TypeAdapter(NoteOut)


def _join_base(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def _error_detail(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or None
    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return None


class HttpNoteService:
    """Notes collection served over HTTP/JSON.

    Every failure surfaces as ``RemoteError``: transport problems as
    ``remote_request_failed``, error statuses as ``remote_http_<status>`` and
    unparseable bodies as ``remote_bad_response``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    async def _request(self, method: str, path: str, payload: dict | None = None) -> httpx.Response:
        url = _join_base(self.base_url, path)
        try:
            async with self._client() as client:
                resp = await client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("remote_request_failed", extra={"method": method, "url": url, "error": repr(e)})
            raise RemoteError("remote_request_failed", detail=str(e) or None) from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.warning(
                "remote_http_error",
                extra={"method": method, "url": url, "status": resp.status_code, "detail": detail},
            )
            raise RemoteError(f"remote_http_{resp.status_code}", status=resp.status_code, detail=detail)
        return resp

    @staticmethod
    def _parse(resp: httpx.Response, adapter: TypeAdapter) -> list[NoteRecord]:
        try:
            parsed = adapter.validate_python(resp.json())
            notes = parsed if isinstance(parsed, list) else [parsed]
            return [n.to_record() for n in notes]
        except (ValueError, PydanticValidationError) as e:
            raise RemoteError("remote_bad_response", status=resp.status_code) from e

    async def list_notes(self) -> list[NoteRecord]:
        resp = await self._request("GET", "/notes")
        return self._parse(resp, _NOTE_LIST)

    async def create_note(self, title: str, content: str) -> NoteRecord:
        resp = await self._request("POST", "/notes", {"title": title, "content": content})
        return self._parse(resp, _NOTE_ONE)[0]

    async def update_note(self, note_id: int, title: str, content: str) -> NoteRecord:
        resp = await self._request("PUT", f"/notes/{note_id}", {"title": title, "content": content})
        return self._parse(resp, _NOTE_ONE)[0]

    async def delete_note(self, note_id: int) -> None:
        await self._request("DELETE", f"/notes/{note_id}")
