from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

from songbook_sync.models.songs import Song

# Realtime Database keys cannot contain these characters.
_FORBIDDEN_KEY_CHARS = re.compile(r"[.#$\[\]/]")


class CollectionIdInput(BaseModel):
    collection_id: str = Field(min_length=1, max_length=128)

    @field_validator("collection_id")
    @classmethod
    def validate_collection_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("collection_id must not be blank")
        if _FORBIDDEN_KEY_CHARS.search(v):
            raise ValueError(f"Invalid collection ID: {v!r}")
        return v


class GetCollectionInput(CollectionIdInput):
    offset: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, ge=1)


class GetCollectionOutput(BaseModel):
    collection_id: str
    total_songs: int
    offset: int
    songs: list[Song]


class ListCollectionsOutput(BaseModel):
    collections: list[str]
