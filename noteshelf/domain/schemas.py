from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from noteshelf.domain.entities import NoteRecord


class NoteOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(gt=0)
    title: str
    content: str = ""
    created_at: AwareDatetime = Field(
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    updated_at: AwareDatetime = Field(
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )

    @classmethod
    def from_record(cls, record: NoteRecord) -> "NoteOut":
        return cls(
            id=record.id,
            title=record.title,
            content=record.content,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> NoteRecord:
        return NoteRecord(
            id=self.id,
            title=self.title,
            content=self.content,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class NoteWriteIn(BaseModel):
    title: str
    content: str = ""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title_required")
        return value


class ExportOptions(BaseModel):
    title: Optional[str] = None
    include_timestamp: bool = True
    theme: Literal["light", "dark"] = "light"
