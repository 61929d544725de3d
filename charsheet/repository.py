"""
repository.py

Single owner of the "current sheet".

States: EMPTY -> LOADED <-> EDITING(section). Every change to the canonical
record goes through a transition here; subscribers and callers only ever see
deep copies. Each committed change is persisted (best effort) and published.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from charsheet.errors import EditWithoutLoadedSheet, InvalidInput, NoActiveEdit
from charsheet.model.schema import SECTION_ATTRS, CharacterSheet, SectionId
from charsheet.normalize.normalizer import normalize
from charsheet.notify import NotificationBroker
from charsheet.store import SheetStore

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[CharacterSheet]], None]


class RepositoryState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    EDITING = "editing"


@dataclass
class EditSession:
    """A staged, independent copy of the canonical record for one section."""

    section: SectionId
    staged: CharacterSheet

    @property
    def payload(self) -> Any:
        # CharacterInfo | AbilitySet | SkillSet | SpellState | Inventory
        return self.staged.section_payload(self.section)

    def update(self, path: str, value: Any) -> None:
        """Set a dotted JSON path in the staged section, e.g. 'hitPoints.current' or 'items.0.name'."""
        payload = self.payload
        data = payload.model_dump(mode="json", by_alias=True)
        *parents, leaf = path.split(".")
        try:
            node = data
            for part in parents:
                node = node[int(part)] if isinstance(node, list) else node[part]
            if isinstance(node, list):
                node[int(leaf)] = value
            elif leaf in node:
                node[leaf] = value
            else:
                raise KeyError(leaf)
            updated = type(payload).model_validate(data)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise InvalidInput(f"Cannot set {path!r} on {self.section.value}: {e}") from e
        setattr(self.staged, SECTION_ATTRS[self.section], updated)


def _section_id(section: Union[SectionId, str]) -> SectionId:
    try:
        return SectionId(section)
    except ValueError:
        raise InvalidInput(f"Unknown section: {section!r}") from None


class SheetRepository:
    def __init__(
        self,
        store: Optional[SheetStore] = None,
        broker: Optional[NotificationBroker] = None,
    ):
        self.store = store
        self.broker = broker
        self._sheet: Optional[CharacterSheet] = None
        self._session: Optional[EditSession] = None
        self._listeners: List[Listener] = []
        self._revision = 0

    # ---------- read side ----------

    @property
    def state(self) -> RepositoryState:
        if self._sheet is None:
            return RepositoryState.EMPTY
        if self._session is not None:
            return RepositoryState.EDITING
        return RepositoryState.LOADED

    @property
    def editing_section(self) -> Optional[SectionId]:
        return self._session.section if self._session else None

    @property
    def session(self) -> Optional[EditSession]:
        return self._session

    @property
    def current(self) -> Optional[CharacterSheet]:
        return self._sheet.model_copy(deep=True) if self._sheet is not None else None

    @property
    def revision(self) -> int:
        """Bumped on every change; compare to detect stale results."""
        return self._revision

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; it is called at once with the current sheet."""
        self._listeners.append(listener)
        listener(self.current)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------- transitions ----------

    def rehydrate(self) -> bool:
        """Load the last committed sheet from the store, if any. Does not re-save."""
        if self.store is None:
            return False
        sheet = self.store.load()
        if sheet is None:
            return False
        self._sheet = sheet
        self._session = None
        self._changed(persist=False)
        logger.info("rehydrated sheet %r", sheet.info.name)
        return True

    def import_sheet(self, sheet: CharacterSheet) -> CharacterSheet:
        """Replace the canonical record wholesale (EMPTY/LOADED/EDITING -> LOADED)."""
        if not isinstance(sheet, CharacterSheet):
            raise TypeError("import_sheet expects a normalized CharacterSheet")
        if self._session is not None:
            logger.info(
                "import replaces sheet while editing %s; stage discarded",
                self._session.section.value,
            )
        self._sheet = sheet.model_copy(deep=True)
        self._session = None
        self._changed()
        return self.current

    def begin_edit(self, section: Union[SectionId, str]) -> EditSession:
        section = _section_id(section)
        if self._sheet is None:
            raise EditWithoutLoadedSheet("Load a character sheet before editing it")
        if self._session is not None:
            # last writer wins
            logger.warning(
                "edit of %s discarded by new edit of %s",
                self._session.section.value,
                section.value,
            )
        self._session = EditSession(section=section, staged=self._sheet.model_copy(deep=True))
        return self._session

    def commit_edit(self) -> CharacterSheet:
        """Merge only the edited section of the staged copy into the canonical record."""
        session = self._require_session()
        attr = SECTION_ATTRS[session.section]
        merged = self._sheet.to_dict()
        merged[attr] = session.payload.model_dump(mode="json", by_alias=True)
        self._sheet = normalize(merged)
        self._session = None
        self._changed()
        if self.broker is not None:
            self.broker.success("Changes saved successfully!")
        return self.current

    def cancel_edit(self) -> None:
        self._require_session()
        self._session = None

    def clear(self) -> None:
        self._sheet = None
        self._session = None
        if self.store is not None:
            self.store.clear()
        self._revision += 1
        self._publish()

    # ---------- layout ----------

    def move_section(self, section: Union[SectionId, str], new_index: int) -> CharacterSheet:
        """Move a section to `new_index` in display order; orders become 1..n."""
        section = _section_id(section)
        sheet = self._require_sheet()
        ordered = [s.id for s in sheet.layout.ordered()]
        ordered.remove(section)
        new_index = max(0, min(new_index, len(ordered)))
        ordered.insert(new_index, section)
        rank = {sid: i for i, sid in enumerate(ordered, start=1)}
        return self._update_layout(
            lambda layout: [
                {**s, "order": rank[SectionId(s["id"])]} for s in layout["sections"]
            ]
        )

    def set_section_visible(self, section: Union[SectionId, str], visible: bool) -> CharacterSheet:
        return self._set_section_flag(section, "visible", visible)

    def set_section_collapsed(
        self, section: Union[SectionId, str], collapsed: bool
    ) -> CharacterSheet:
        return self._set_section_flag(section, "collapsed", collapsed)

    def set_theme(self, theme: str) -> CharacterSheet:
        if theme not in ("light", "dark"):
            raise InvalidInput(f"Unknown theme: {theme!r}")
        sheet = self._require_sheet()
        data = sheet.to_dict()
        data["layout"]["theme"] = theme
        return self._replace(data)

    def _set_section_flag(
        self, section: Union[SectionId, str], flag: str, value: bool
    ) -> CharacterSheet:
        sid = _section_id(section).value
        self._require_sheet()
        return self._update_layout(
            lambda layout: [
                {**s, flag: bool(value)} if s["id"] == sid else s
                for s in layout["sections"]
            ]
        )

    def _update_layout(self, rewrite: Callable[[Dict[str, Any]], List[Dict[str, Any]]]):
        data = self._require_sheet().to_dict()
        data["layout"]["sections"] = rewrite(data["layout"])
        return self._replace(data)

    def _replace(self, data: Dict[str, Any]) -> CharacterSheet:
        self._sheet = normalize(data)
        self._changed()
        return self.current

    # ---------- internals ----------

    def _require_sheet(self) -> CharacterSheet:
        if self._sheet is None:
            raise EditWithoutLoadedSheet("No character sheet is loaded")
        return self._sheet

    def _require_session(self) -> EditSession:
        if self._session is None:
            raise NoActiveEdit("No edit session is active")
        return self._session

    def _changed(self, persist: bool = True) -> None:
        self._revision += 1
        if persist and self.store is not None and self._sheet is not None:
            self.store.save(self._sheet)
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.current)
            except Exception:
                logger.exception("sheet listener failed")
