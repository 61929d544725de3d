"""
patterns.py

Pattern extractor for flat text dumped from a PDF character sheet.

Every label is matched independently; a label that is absent simply leaves the
field unset. Repeating patterns are applied in text order and the last match
for a given key wins (no aggregation). Nothing here raises: foreign or
malformed text degrades to an (almost) empty PartialSheet.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from charsheet.extract.textnorm import normalize_sheet_text
from charsheet.model.schema import (
    ABILITY_KEYS,
    CURRENCY_CODES,
    CURRENCY_KEYS,
    SKILL_KEYS,
    SKILL_LOOKUP,
    SKILL_NAMES,
    PartialSheet,
)

logger = logging.getLogger(__name__)

_FLAGS = re.I
_MAX_DIGITS = 9

_ABILITY_ALT = "|".join(k.capitalize() for k in ABILITY_KEYS)
# longest first so "Sleight of Hand" never loses to a shorter prefix
_SKILL_ALT = "|".join(
    re.escape(label).replace(r"\ ", r"\s+")
    for label in sorted(SKILL_NAMES.values(), key=len, reverse=True)
)

# (json key, pattern, is_int); single-shot, first occurrence
INFO_PATTERNS: List[Tuple[str, re.Pattern, bool]] = [
    ("name", re.compile(r"Character\s+Name:[ \t]*([^\n]+)", _FLAGS), False),
    ("class", re.compile(r"(?<!Spellcasting )\bClass:[ \t]*([^\n]+)", _FLAGS), False),
    ("level", re.compile(r"\bLevel:\s*(\d+)", _FLAGS), True),
    ("race", re.compile(r"\bRace:[ \t]*([^\n]+)", _FLAGS), False),
    ("background", re.compile(r"\bBackground:[ \t]*([^\n]+)", _FLAGS), False),
    ("alignment", re.compile(r"\bAlignment:[ \t]*([^\n]+)", _FLAGS), False),
    ("experience", re.compile(r"Experience\s+Points:\s*(\d+)", _FLAGS), True),
    ("armorClass", re.compile(r"Armor\s+Class:\s*(\d+)", _FLAGS), True),
    ("initiative", re.compile(r"\bInitiative:\s*([+-]?\d+)", _FLAGS), True),
    ("speed", re.compile(r"\bSpeed:\s*(\d+)", _FLAGS), True),
]
HIT_POINTS_RE = re.compile(r"Hit\s+Points:\s*(\d+)\s*/\s*(\d+)", _FLAGS)

SPELL_META_PATTERNS: List[Tuple[str, re.Pattern, bool]] = [
    ("spellcastingClass", re.compile(r"Spellcasting\s+Class:[ \t]*([^\n]+)", _FLAGS), False),
    ("spellcastingAbility", re.compile(r"Spellcasting\s+Ability:[ \t]*([^\n]+)", _FLAGS), False),
    ("spellSaveDC", re.compile(r"Spell\s+Save\s+DC:\s*(\d+)", _FLAGS), True),
    ("spellAttackBonus", re.compile(r"Spell\s+Attack\s+Bonus:\s*([+-]?\d+)", _FLAGS), True),
]

# Strength 16 (+3)
ABILITY_RE = re.compile(
    rf"\b({_ABILITY_ALT})\s*(\d+)\s*\(\s*([+-]?\d+)\s*\)", _FLAGS
)
# Strength Saving Throw
SAVE_RE = re.compile(rf"\b({_ABILITY_ALT})\s+Saving\s+Throw", _FLAGS)
# Animal Handling (+4)
SKILL_RE = re.compile(rf"\b({_SKILL_ALT})\s*\(\s*([+-]?\d+)\s*\)", _FLAGS)
# Level 1 Slots: 3/4
SLOT_RE = re.compile(r"\bLevel\s+(\d+)\s+Slots:\s*(\d+)\s*/\s*(\d+)", _FLAGS)
# Magic Missile (1st level Evocation)
SPELL_RE = re.compile(
    r"([A-Za-z][A-Za-z' ]*?)[ \t]*\((\d+)(?:st|nd|rd|th)?[ \t-]*level[ \t]+([A-Za-z]+)\)",
    _FLAGS,
)
# GP: 50
CURRENCY_RE = re.compile(r"\b(CP|SP|EP|GP|PP):\s*(\d+)", _FLAGS)
# Rope (2)
ITEM_RE = re.compile(r"([A-Za-z][A-Za-z' ]*?)[ \t]*\((\d+)\)", _FLAGS)


def _clean(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def _int(raw: str) -> Optional[int]:
    # sheet numbers are short; longer digit runs are noise, not values
    if len(raw.lstrip("+-")) > _MAX_DIGITS:
        return None
    return int(raw)


def _single_shot(
    text: str, patterns: List[Tuple[str, re.Pattern, bool]], prefix: str, out: PartialSheet
) -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for key, pat, is_int in patterns:
        m = pat.search(text)
        raw = _clean(m.group(1)) if m else ""
        value = (_int(raw) if is_int else raw) if raw else None
        if value is None:
            out.missing.append(f"{prefix}.{key}")
            continue
        found[key] = value
    return found


def _extract_info(text: str, out: PartialSheet) -> None:
    info = _single_shot(text, INFO_PATTERNS, "info", out)
    m = HIT_POINTS_RE.search(text)
    current, maximum = (_int(m.group(1)), _int(m.group(2))) if m else (None, None)
    if current is not None and maximum is not None:
        info["hitPoints"] = {"current": current, "maximum": maximum, "temporary": 0}
    else:
        out.missing.append("info.hitPoints")
    if info:
        out.fields["info"] = info


def _extract_abilities(text: str, out: PartialSheet) -> None:
    abilities: Dict[str, Dict[str, Any]] = {}
    for m in ABILITY_RE.finditer(text):
        score, modifier = _int(m.group(2)), _int(m.group(3))
        if score is None or modifier is None:
            continue
        entry = abilities.setdefault(m.group(1).lower(), {})
        entry["score"] = score
        entry["modifier"] = modifier
    for m in SAVE_RE.finditer(text):
        abilities.setdefault(m.group(1).lower(), {})["savingThrowProficient"] = True

    out.missing.extend(f"abilities.{k}" for k in ABILITY_KEYS if k not in abilities)
    if abilities:
        out.fields["abilities"] = abilities


def _extract_skills(text: str, out: PartialSheet) -> None:
    skills: Dict[str, Dict[str, Any]] = {}
    for m in SKILL_RE.finditer(text):
        key = SKILL_LOOKUP.get(_clean(m.group(1)).lower())
        modifier = _int(m.group(2))
        if key is None or modifier is None:
            continue
        # expertise is never inferred from text
        skills[key] = {"proficient": True, "modifier": modifier}

    out.missing.extend(f"skills.{k}" for k in SKILL_KEYS if k not in skills)
    if skills:
        out.fields["skills"] = skills


def _extract_spellcasting(text: str, out: PartialSheet) -> None:
    spellcasting = _single_shot(text, SPELL_META_PATTERNS, "spellcasting", out)

    slots = []
    for m in SLOT_RE.finditer(text):
        level, current, maximum = (_int(g) for g in m.groups())
        if None in (level, current, maximum):
            continue
        slots.append({"level": level, "current": current, "maximum": maximum})

    spells = []
    for m in SPELL_RE.finditer(text):
        level = _int(m.group(2))
        if level is None:
            continue
        spells.append(
            {
                "name": _clean(m.group(1)),
                "level": level,
                "school": _clean(m.group(3)),
                "castingTime": "",
                "range": "",
                "components": {"verbal": False, "somatic": False},
                "duration": "",
                "description": "",
                "prepared": True,
            }
        )

    if slots:
        spellcasting["slots"] = slots
    else:
        out.missing.append("spellcasting.slots")
    if spells:
        spellcasting["spells"] = spells
    else:
        out.missing.append("spellcasting.spells")
    if spellcasting:
        out.fields["spellcasting"] = spellcasting


def _extract_inventory(text: str, out: PartialSheet) -> None:
    currency: Dict[str, int] = {}
    for m in CURRENCY_RE.finditer(text):
        amount = _int(m.group(2))
        if amount is not None:
            currency[CURRENCY_CODES[m.group(1).upper()]] = amount
    out.missing.extend(
        f"inventory.currency.{k}" for k in CURRENCY_KEYS if k not in currency
    )

    items = []
    for m in ITEM_RE.finditer(text):
        quantity = _int(m.group(2))
        if quantity is not None:
            items.append({"name": _clean(m.group(1)), "quantity": quantity, "type": "other"})
    if not items:
        out.missing.append("inventory.items")

    inventory: Dict[str, Any] = {}
    if items:
        inventory["items"] = items
    if currency:
        inventory["currency"] = currency
    if inventory:
        out.fields["inventory"] = inventory


def extract_text(raw_text: str) -> PartialSheet:
    """Scan flat sheet text with labeled patterns. Never raises."""
    out = PartialSheet(source="pdf-text", raw_text=raw_text)
    if not isinstance(raw_text, str) or not raw_text.strip():
        out.missing.append("*")
        return out

    text = normalize_sheet_text(raw_text)
    _extract_info(text, out)
    _extract_abilities(text, out)
    _extract_skills(text, out)
    _extract_spellcasting(text, out)
    _extract_inventory(text, out)

    logger.debug(
        "pattern extraction: %d sections, %d fields missing",
        len(out.fields),
        len(out.missing),
    )
    return out


class PatternExtractor:
    """Text-source extractor; thin object wrapper around extract_text."""

    def extract(self, raw_text: str) -> PartialSheet:
        return extract_text(raw_text)
