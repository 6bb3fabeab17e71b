from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class NoteRecord:
    id: int
    title: str
    content: str
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if self.updated_at < self.created_at:
            raise ValueError("updated_at_before_created_at")
