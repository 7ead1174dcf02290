from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_number(value: object) -> object:
    # The database stores numbers as ints or strings depending on who wrote them
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class Verse(BaseModel):
    """Single verse (or chorus) of a song."""

    model_config = ConfigDict(populate_by_name=True)

    number: str = Field(default="", alias="verse_number")
    lyrics: str = ""

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v: object) -> object:
        return _coerce_number(v)


class Song(BaseModel):
    """Song record as stored in the Realtime Database and bundled assets.

    Wire keys follow the database layout (``song_number``, ``song_title``,
    ``url``); ``model_dump(by_alias=True)`` reproduces them.
    """

    model_config = ConfigDict(populate_by_name=True)

    number: str = Field(alias="song_number")
    title: str = Field(default="", alias="song_title")
    verses: list[Verse] = []
    audio_url: str | None = Field(default=None, alias="url")
    collection_id: str | None = None

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v: object) -> object:
        return _coerce_number(v)
