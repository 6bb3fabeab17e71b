from functools import lru_cache

from fastapi import Request

from noteshelf.config import load_settings
from noteshelf.remote.http_service import HttpNoteService
from noteshelf.store import InMemoryNoteStore

@lru_cache()
def get_settings():
    return load_settings()

@lru_cache()
def get_service():
    settings = get_settings()
    return HttpNoteService(settings.api_base_url, timeout_s=settings.api_timeout_s)

def get_store(request: Request) -> InMemoryNoteStore:
    return request.app.state.store
