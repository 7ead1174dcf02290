"""Unit tests for songbook_sync.parser."""

from __future__ import annotations

import pytest

from songbook_sync.parser import parse_songs, song_number_key


def _raw(number: int | str, title: str = "Title") -> dict:
    return {
        "song_number": number,
        "song_title": title,
        "verses": [{"verse_number": 1, "lyrics": "Lyrics"}],
    }


class TestPayloadShapes:
    def test_object_keyed_by_number(self) -> None:
        songs = parse_songs({"2": _raw(2, "B"), "1": _raw(1, "A")}, "LPMI")

        assert [song.number for song in songs] == ["1", "2"]
        assert [song.title for song in songs] == ["A", "B"]
        assert all(song.collection_id == "LPMI" for song in songs)

    def test_array_with_null_holes(self) -> None:
        songs = parse_songs([None, _raw(1), None, _raw(3)], "SRD")

        assert [song.number for song in songs] == ["1", "3"]

    def test_missing_song_number_falls_back_to_key(self) -> None:
        raw = _raw(0)
        del raw["song_number"]

        songs = parse_songs({"42": raw}, "LPMI")

        assert songs[0].number == "42"

    def test_integer_numbers_are_coerced(self) -> None:
        song = parse_songs([_raw(7)], "LPMI")[0]

        assert song.number == "7"
        assert song.verses[0].number == "1"

    def test_none_payload_is_empty(self) -> None:
        assert parse_songs(None, "LPMI") == []

    def test_scalar_payload_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_songs("not a collection", "LPMI")


class TestInvalidEntries:
    def test_non_object_entries_are_skipped(self) -> None:
        songs = parse_songs({"1": _raw(1), "2": "garbage", "3": 17}, "LPMI")

        assert [song.number for song in songs] == ["1"]

    def test_entries_failing_validation_are_skipped(self) -> None:
        broken = {"song_number": 2, "verses": "not a list"}

        songs = parse_songs([_raw(1), broken], "LPMI")

        assert [song.number for song in songs] == ["1"]


class TestOrdering:
    def test_numeric_order_not_lexical(self) -> None:
        songs = parse_songs({str(n): _raw(n) for n in (10, 9, 100, 1)}, "LPMI")

        assert [song.number for song in songs] == ["1", "9", "10", "100"]

    def test_non_numeric_numbers_sort_after_numeric(self) -> None:
        assert sorted(["12a", "3", "B", "20"], key=song_number_key) == ["3", "20", "12a", "B"]
