"""
importer.py

Source -> extractor -> normalizer -> repository pipelines.

Reading a file and fetching a page are the only suspension points. Validation
and acquisition failures are published as error notifications and re-raised;
in that case the repository is left exactly as it was. Imports are not
cancelled: when two overlap, whichever completes last is the current sheet.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from charsheet.config import Settings, get_settings
from charsheet.errors import CharSheetError, InvalidInput
from charsheet.export.exporters import parse_json
from charsheet.extract.document import DocumentExtractor
from charsheet.extract.patterns import PatternExtractor
from charsheet.extract.sources import fetch_character_document, load_pdf_text
from charsheet.model.schema import CharacterSheet, PartialSheet
from charsheet.normalize.normalizer import normalize
from charsheet.notify import NotificationBroker
from charsheet.repository import SheetRepository
from charsheet.store import SheetStore

logger = logging.getLogger(__name__)

IMPORT_OK = "Character imported successfully"
IMPORT_EMPTY = "No character data found; an empty sheet was loaded"


class SheetImporter:
    def __init__(
        self,
        repository: SheetRepository,
        broker: Optional[NotificationBroker],
        store: Optional[SheetStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.broker = broker
        self.store = store if store is not None else repository.store
        self.settings = settings or get_settings()
        self.pattern_extractor = PatternExtractor()
        self._document_extractor: Optional[DocumentExtractor] = None

    @property
    def document_extractor(self) -> DocumentExtractor:
        if self._document_extractor is None:
            self._document_extractor = DocumentExtractor()
        return self._document_extractor

    # ---------- async sources ----------

    async def import_pdf(
        self, path: Path, content_type: Optional[str] = None
    ) -> CharacterSheet:
        """Read a PDF character sheet and make it the current sheet."""
        try:
            text = await load_pdf_text(
                Path(path), self.settings.max_upload_bytes, content_type
            )
        except CharSheetError as e:
            self._fail(e)
            raise
        return self._import_text(text)

    async def import_url(self, url: str) -> CharacterSheet:
        """Fetch a remote character profile page and make it the current sheet."""
        try:
            document = await fetch_character_document(
                url, self.settings.fetch_timeout_s, self.settings.user_agent
            )
        except CharSheetError as e:
            self._fail(e)
            raise
        return self._commit(self.document_extractor.extract(document))

    # ---------- sync sources ----------

    def import_text(self, text: str) -> CharacterSheet:
        return self._import_text(text)

    def import_json(self, text: str) -> CharacterSheet:
        """Load a sheet previously written by export_json."""
        try:
            data = parse_json(text)
        except CharSheetError as e:
            self._fail(e)
            raise
        return self._commit(PartialSheet(fields=data, source="json"))

    def reparse_cached_text(self) -> CharacterSheet:
        """Re-run the text pipeline on the last cached PDF text."""
        text = self.store.load_raw_text() if self.store is not None else None
        if not text:
            err = InvalidInput("No cached sheet text to re-parse; import a PDF first")
            self._fail(err)
            raise err
        return self._commit(self.pattern_extractor.extract(text))

    # ---------- internals ----------

    def _import_text(self, text: str) -> CharacterSheet:
        sheet = self._commit(self.pattern_extractor.extract(text))
        if self.store is not None:
            self.store.save_raw_text(text)
        return sheet

    def _commit(self, partial: PartialSheet) -> CharacterSheet:
        sheet = self.repository.import_sheet(normalize(partial))
        logger.info(
            "imported %r from %s (%d fields missing)",
            sheet.info.name,
            partial.source,
            len(partial.missing),
        )
        if self.broker is not None:
            if partial.fields:
                self.broker.success(IMPORT_OK)
            else:
                self.broker.warning(IMPORT_EMPTY)
        return sheet

    def _fail(self, exc: CharSheetError) -> None:
        logger.warning("import failed: %s", exc)
        if self.broker is not None:
            self.broker.error(str(exc))
