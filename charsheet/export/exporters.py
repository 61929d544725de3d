"""
exporters.py

JSON and PDF renditions of the current sheet.
"""

from __future__ import annotations

import json
import logging
import re
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import fitz  # PyMuPDF

from charsheet.errors import SerializationFailure
from charsheet.model.schema import (
    ABILITY_KEYS,
    SKILL_NAMES,
    CharacterSheet,
    SectionId,
)

logger = logging.getLogger(__name__)

CREATOR = "charsheet"

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')

PAGE_WIDTH, PAGE_HEIGHT = fitz.paper_size("letter")
MARGIN = 54
BODY_SIZE = 10
HEADING_SIZE = 14
TITLE_SIZE = 20
LINE_GAP = 4
WRAP_CHARS = 95


# ---------- JSON ----------


def export_json(sheet: CharacterSheet) -> str:
    return json.dumps(sheet.to_dict(), indent=2, ensure_ascii=False)


def parse_json(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except ValueError as e:
        # JSONDecodeError, or an integer past the interpreter digit limit
        raise SerializationFailure(f"Not a valid sheet export: {e}") from e
    if not isinstance(data, dict):
        raise SerializationFailure("Not a valid sheet export: expected a JSON object")
    return data


def export_filename(sheet: CharacterSheet, ext: str) -> str:
    """'<name>-sheet.<ext>', or 'character-sheet.<ext>' for an unnamed sheet."""
    name = _UNSAFE_FILENAME_RE.sub("_", sheet.info.name or "").strip(" ._")
    return f"{name or 'character'}-sheet.{ext.lstrip('.')}"


# ---------- PDF ----------


def _signed(n: int) -> str:
    return f"+{n}" if n >= 0 else str(n)


def _info_lines(sheet: CharacterSheet) -> List[str]:
    info = sheet.info
    rows = [
        ("Name", info.name),
        ("Class", info.character_class),
        ("Level", info.level),
        ("Race", info.race),
        ("Background", info.background),
        ("Alignment", info.alignment),
        ("Experience", info.experience),
        ("Armor Class", info.armor_class),
        ("Initiative", _signed(info.initiative) if info.initiative is not None else None),
        ("Speed", info.speed),
    ]
    lines = [f"{label}: {value}" for label, value in rows if value is not None]
    hp = info.hit_points
    if hp is not None:
        temp = f" (+{hp.temporary} temp)" if hp.temporary else ""
        lines.append(f"Hit Points: {hp.current}/{hp.maximum}{temp}")
    return lines


def _ability_lines(sheet: CharacterSheet) -> List[str]:
    lines = []
    for key in ABILITY_KEYS:
        a = getattr(sheet.abilities, key)
        save = "  [saving throw]" if a.saving_throw_proficient else ""
        lines.append(f"{key.capitalize()} {a.score} ({_signed(a.modifier)}){save}")
    return lines


def _skill_lines(sheet: CharacterSheet) -> List[str]:
    data = sheet.skills.model_dump(by_alias=True)
    lines = []
    for key, label in SKILL_NAMES.items():
        s = data[key]
        mark = "**" if s["expertise"] else "*" if s["proficient"] else ""
        lines.append(f"{label}{mark} {_signed(s['modifier'])}")
    return lines


def _spell_lines(sheet: CharacterSheet) -> List[str]:
    sc = sheet.spellcasting
    lines = []
    if sc.spellcasting_class:
        lines.append(f"Spellcasting Class: {sc.spellcasting_class}")
    if sc.spellcasting_ability:
        lines.append(f"Spellcasting Ability: {sc.spellcasting_ability}")
    if sc.spell_save_dc is not None:
        lines.append(f"Spell Save DC: {sc.spell_save_dc}")
    if sc.spell_attack_bonus is not None:
        lines.append(f"Spell Attack Bonus: {_signed(sc.spell_attack_bonus)}")
    for slot in sorted(sc.slots, key=lambda s: s.level):
        lines.append(f"Level {slot.level} Slots: {slot.current}/{slot.maximum}")
    for spell in sorted(sc.spells, key=lambda s: (s.level, s.name)):
        level = "cantrip" if spell.level == 0 else f"level {spell.level}"
        school = f" {spell.school}" if spell.school else ""
        prepared = "" if spell.prepared else "  (not prepared)"
        lines.append(f"{spell.name} ({level}{school}){prepared}")
    return lines or ["No spellcasting"]


def _inventory_lines(sheet: CharacterSheet) -> List[str]:
    inv = sheet.inventory
    lines = []
    for item in inv.items:
        extra = []
        if item.type != "other":
            extra.append(item.type)
        if item.weight is not None:
            extra.append(f"{item.weight:g} lb")
        if item.equipped:
            extra.append("equipped")
        suffix = f" [{', '.join(extra)}]" if extra else ""
        lines.append(f"{item.name} x{item.quantity}{suffix}")
    c = inv.currency
    lines.append(
        f"CP {c.copper}  SP {c.silver}  EP {c.electrum}  GP {c.gold}  PP {c.platinum}"
    )
    return lines


_SECTION_RENDERERS = {
    SectionId.CHARACTER_INFO: _info_lines,
    SectionId.ABILITIES: _ability_lines,
    SectionId.SKILLS: _skill_lines,
    SectionId.SPELLS: _spell_lines,
    SectionId.INVENTORY: _inventory_lines,
}


class _PageWriter:
    """Top-down text cursor that starts a new page when the current one is full."""

    def __init__(self, doc: fitz.Document):
        self.doc = doc
        self.page: Optional[fitz.Page] = None
        self.y = PAGE_HEIGHT

    def _ensure_room(self, height: float) -> None:
        if self.page is None or self.y + height > PAGE_HEIGHT - MARGIN:
            self.page = self.doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            self.y = MARGIN

    def write(self, text: str, size: float = BODY_SIZE, font: str = "helv") -> None:
        for chunk in textwrap.wrap(text, WRAP_CHARS) or [""]:
            self._ensure_room(size + LINE_GAP)
            self.y += size
            self.page.insert_text((MARGIN, self.y), chunk, fontsize=size, fontname=font)
            self.y += LINE_GAP

    def gap(self, height: float = 8) -> None:
        self.y += height


def pdf_metadata(sheet: CharacterSheet) -> Dict[str, str]:
    info = sheet.info
    name = info.name or "Character"
    subject = " ".join(
        str(p) for p in ("Level", info.level, info.character_class) if p is not None
    )
    return {
        "title": f"{name} Sheet",
        "subject": subject if info.level is not None else (info.character_class or ""),
        "creator": CREATOR,
    }


def render_sheet_pdf(sheet: CharacterSheet) -> bytes:
    """One labeled block per visible section, in layout order."""
    doc = fitz.open()
    try:
        w = _PageWriter(doc)
        w.write(sheet.info.name or "Character", size=TITLE_SIZE, font="hebo")
        w.gap()
        for section in sheet.layout.ordered():
            if not section.visible:
                continue
            w.write(section.title, size=HEADING_SIZE, font="hebo")
            for line in _SECTION_RENDERERS[section.id](sheet):
                w.write(line)
            w.gap()
        doc.set_metadata(pdf_metadata(sheet))
        data = doc.tobytes()
    finally:
        doc.close()
    logger.debug("rendered %d-byte pdf for %r", len(data), sheet.info.name)
    return data


# ---------- files ----------


def write_export(data: Union[str, bytes], out_path: Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        out_path.write_bytes(data)
    else:
        out_path.write_text(data, encoding="utf-8")
    return out_path


def export_sheet(
    sheet: CharacterSheet, fmt: str, out_dir: Path, out: Optional[Path] = None
) -> Path:
    """Write `sheet` as json or pdf; defaults to <out_dir>/<export_filename>."""
    if fmt == "json":
        data: Union[str, bytes] = export_json(sheet)
    elif fmt == "pdf":
        data = render_sheet_pdf(sheet)
    else:
        raise ValueError(f"Unknown export format: {fmt}")
    path = write_export(data, out or Path(out_dir) / export_filename(sheet, fmt))
    logger.info("exported %s to %s", fmt, path)
    return path
