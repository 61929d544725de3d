from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from charsheet.config import get_settings
from charsheet.errors import SerializationFailure
from charsheet.model.schema import CharacterSheet
from charsheet.normalize.normalizer import normalize
from charsheet.notify import NotificationBroker

logger = logging.getLogger(__name__)

# ---------- connection / schema ----------


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    return con


def init_db(db_path: Path) -> Path:
    con = connect(db_path)
    try:
        # one JSON blob per key
        con.execute("""
        CREATE TABLE IF NOT EXISTS kv (
          key         TEXT PRIMARY KEY,
          value       TEXT NOT NULL,
          updated_at  TEXT DEFAULT (datetime('now'))
        );
        """)
        con.commit()
    finally:
        con.close()
    return db_path


# ---------- store ----------


class SheetStore:
    """
    Synchronous JSON key-value cache for the current sheet.

    save/load/clear never raise: failures are logged and published as error
    notifications; the in-memory record stays authoritative.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        broker: Optional[NotificationBroker] = None,
        sheet_key: Optional[str] = None,
        raw_text_key: Optional[str] = None,
    ):
        if db_path is None or sheet_key is None or raw_text_key is None:
            cfg = get_settings()
            db_path = db_path or cfg.db_path
            sheet_key = sheet_key or cfg.sheet_key
            raw_text_key = raw_text_key or cfg.raw_text_key
        self.db_path = Path(db_path)
        self.broker = broker
        self.sheet_key = sheet_key
        self.raw_text_key = raw_text_key
        self._ready = False

    # ---------- raw key access (raises SerializationFailure) ----------

    def _con(self) -> sqlite3.Connection:
        if not self._ready:
            init_db(self.db_path)
            self._ready = True
        return connect(self.db_path)

    def put(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise SerializationFailure(f"value for {key!r} is not JSON-safe: {e}") from e
        try:
            con = self._con()
            try:
                con.execute(
                    """
                    INSERT INTO kv (key, value, updated_at)
                    VALUES (?, ?, datetime('now'))
                    ON CONFLICT(key) DO UPDATE SET
                      value      = excluded.value,
                      updated_at = datetime('now');
                    """,
                    (key, payload),
                )
                con.commit()
            finally:
                con.close()
        except (sqlite3.Error, OSError) as e:
            raise SerializationFailure(f"could not write {key!r}: {e}") from e

    def get(self, key: str) -> Optional[Any]:
        try:
            con = self._con()
            try:
                row = con.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            finally:
                con.close()
        except (sqlite3.Error, OSError) as e:
            raise SerializationFailure(f"could not read {key!r}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise SerializationFailure(f"stored value for {key!r} is not valid JSON: {e}") from e

    def delete(self, key: str) -> None:
        try:
            con = self._con()
            try:
                con.execute("DELETE FROM kv WHERE key = ?", (key,))
                con.commit()
            finally:
                con.close()
        except (sqlite3.Error, OSError) as e:
            raise SerializationFailure(f"could not delete {key!r}: {e}") from e

    # ---------- best-effort sheet persistence ----------

    def save(self, sheet: CharacterSheet) -> bool:
        try:
            self.put(self.sheet_key, sheet.to_dict())
        except SerializationFailure as e:
            self._report("Could not save character sheet", e)
            return False
        return True

    def load(self) -> Optional[CharacterSheet]:
        try:
            payload = self.get(self.sheet_key)
        except SerializationFailure as e:
            self._report("Could not restore saved character sheet", e)
            return None
        if payload is None:
            return None
        if not isinstance(payload, dict):
            self._report(
                "Could not restore saved character sheet",
                SerializationFailure(f"expected an object, got {type(payload).__name__}"),
            )
            return None
        return normalize(payload)

    def clear(self) -> None:
        try:
            self.delete(self.sheet_key)
            self.delete(self.raw_text_key)
        except SerializationFailure as e:
            self._report("Could not clear saved character sheet", e)

    def save_raw_text(self, text: str) -> bool:
        try:
            self.put(self.raw_text_key, text)
        except SerializationFailure as e:
            self._report("Could not cache extracted text", e)
            return False
        return True

    def load_raw_text(self) -> Optional[str]:
        try:
            value = self.get(self.raw_text_key)
        except SerializationFailure as e:
            self._report("Could not read cached text", e)
            return None
        return value if isinstance(value, str) else None

    def _report(self, message: str, exc: Exception) -> None:
        logger.warning("%s: %s", message, exc)
        if self.broker is not None:
            self.broker.error(message)
