import sqlite3

import pytest

from charsheet.errors import SerializationFailure
from charsheet.store import SheetStore


def test_save_then_load_round_trips(store, sample_sheet):
    assert store.load() is None
    assert store.save(sample_sheet) is True
    assert store.load() == sample_sheet


def test_save_overwrites(store, sample_sheet):
    store.save(sample_sheet)
    renamed = sample_sheet.model_copy(deep=True)
    renamed.info.name = "Aria the Bold"
    store.save(renamed)
    assert store.load().info.name == "Aria the Bold"


def test_raw_text_and_clear(store, sample_sheet):
    store.save(sample_sheet)
    store.save_raw_text("Character Name: Aria")
    assert store.load_raw_text() == "Character Name: Aria"

    store.clear()
    assert store.load() is None
    assert store.load_raw_text() is None


def test_put_rejects_unserializable_values(store):
    with pytest.raises(SerializationFailure):
        store.put("bad", object())


def test_generic_keys(store):
    store.put("sheetLayout", {"theme": "dark"})
    assert store.get("sheetLayout") == {"theme": "dark"}
    store.delete("sheetLayout")
    assert store.get("sheetLayout") is None


def _write_raw(store, value):
    store.put("warmup", 1)  # creates the table
    con = sqlite3.connect(str(store.db_path))
    con.execute(
        "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (store.sheet_key, value)
    )
    con.commit()
    con.close()


def test_corrupt_payload_is_reported_not_raised(store, broker):
    _write_raw(store, "{not json")
    assert store.load() is None
    assert broker.current.kind == "error"
    assert broker.current.message == "Could not restore saved character sheet"


def test_non_object_payload_is_reported(store, broker):
    _write_raw(store, "[1, 2, 3]")
    assert store.load() is None
    assert broker.current.kind == "error"


def test_partial_payload_is_normalized(store):
    _write_raw(store, '{"info": {"name": "Old Save"}, "abilities": {"strength": {"score": "14"}}}')
    sheet = store.load()
    assert sheet.info.name == "Old Save"
    assert sheet.abilities.strength.score == 14
    assert len(sheet.layout.sections) == 5


def test_unwritable_store_fails_softly(tmp_path, broker, sample_sheet):
    # a directory cannot be opened as a database file
    store = SheetStore(tmp_path, broker=broker, sheet_key="currentSheet", raw_text_key="raw")
    assert store.save(sample_sheet) is False
    assert broker.current.kind == "error"
    assert store.load() is None
    store.clear()
