"""
normalizer.py

Merges extractor output over the canonical default record:
- every ability, skill and currency key is always present
- scalars are coerced leniently; anything unusable falls back to the default
- spell slots are clamped (current <= maximum), never rejected
- output is a validated CharacterSheet; normalize(normalize(x)) == normalize(x)
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Union

from charsheet.model.schema import (
    ABILITY_KEYS,
    CURRENCY_KEYS,
    ITEM_TYPES,
    SECTION_TITLES,
    SKILL_KEYS,
    CharacterSheet,
    PartialSheet,
    SectionId,
)

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")

_INFO_TEXT_FIELDS = ("name", "class", "race", "background", "alignment")
_INFO_INT_FIELDS = ("level", "experience", "armorClass", "initiative", "speed")
_SPELL_TEXT_FIELDS = ("school", "castingTime", "range", "duration", "description")

SheetInput = Union[PartialSheet, CharacterSheet, Mapping[str, Any], None]


# -----------------------------
# Lenient scalar coercion
# -----------------------------


def _to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        s = value.strip().replace("\u2212", "-")
        try:
            if _INT_RE.match(s):
                return int(s)
            if _FLOAT_RE.match(s):
                return int(float(s))
        except (ValueError, OverflowError):
            # over-long digit runs, or a float that overflowed to inf
            return default
    return default


def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool):
        return default
    try:
        if isinstance(value, (int, float)):
            f = float(value)
        elif isinstance(value, str) and _FLOAT_RE.match(value.strip()):
            f = float(value.strip())
        else:
            return default
    except OverflowError:
        return default
    return f if math.isfinite(f) else default


def _to_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("true", "yes", "1", "on"):
            return True
        if s in ("false", "no", "0", "off", ""):
            return False
    return default


def _to_text(value: Any, default: Optional[str] = None) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        s = re.sub(r"\s+", " ", value).strip()
        return s or default
    return default


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _sequence(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


# -----------------------------
# Canonical defaults
# -----------------------------


def default_layout_dict() -> Dict[str, Any]:
    return {
        "sections": [
            {
                "id": sid.value,
                "title": SECTION_TITLES[sid],
                "order": i,
                "visible": True,
                "collapsed": False,
            }
            for i, sid in enumerate(SectionId, start=1)
        ],
        "theme": "light",
    }


def default_sheet_dict() -> Dict[str, Any]:
    """The canonical default record, in JSON key names."""
    return {
        "info": {},
        "abilities": {
            k: {"score": 10, "modifier": 0, "savingThrowProficient": False}
            for k in ABILITY_KEYS
        },
        "skills": {
            k: {"proficient": False, "expertise": False, "modifier": 0}
            for k in SKILL_KEYS
        },
        "spellcasting": {"slots": [], "spells": []},
        "inventory": {"items": [], "currency": {k: 0 for k in CURRENCY_KEYS}},
        "layout": default_layout_dict(),
    }


# -----------------------------
# Section normalizers
# -----------------------------


def _normalize_info(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _INFO_TEXT_FIELDS:
        v = _to_text(raw.get(key))
        if v is not None:
            out[key] = v
    for key in _INFO_INT_FIELDS:
        v = _to_int(raw.get(key))
        if v is not None:
            out[key] = v

    hp = _mapping(raw.get("hitPoints"))
    current = _to_int(hp.get("current"))
    maximum = _to_int(hp.get("maximum"))
    if current is not None or maximum is not None:
        out["hitPoints"] = {
            "current": current if current is not None else maximum,
            "maximum": maximum if maximum is not None else current,
            "temporary": _to_int(hp.get("temporary"), 0),
        }
    return out


def _normalize_abilities(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out = default_sheet_dict()["abilities"]
    for key in ABILITY_KEYS:
        entry = _mapping(raw.get(key))
        base = out[key]
        base["score"] = _to_int(entry.get("score"), base["score"])
        base["modifier"] = _to_int(entry.get("modifier"), base["modifier"])
        base["savingThrowProficient"] = _to_bool(
            entry.get("savingThrowProficient"), base["savingThrowProficient"]
        )
    return out


def _normalize_skills(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out = default_sheet_dict()["skills"]
    for key in SKILL_KEYS:
        entry = _mapping(raw.get(key))
        base = out[key]
        base["proficient"] = _to_bool(entry.get("proficient"), base["proficient"])
        base["expertise"] = _to_bool(entry.get("expertise"), base["expertise"])
        base["modifier"] = _to_int(entry.get("modifier"), base["modifier"])
    return out


def _normalize_slot(raw: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    level = _to_int(raw.get("level"))
    if level is None or level < 1:
        return None
    current = _to_int(raw.get("current"))
    maximum = _to_int(raw.get("maximum"))
    if current is None and maximum is None:
        return None
    if maximum is None:
        maximum = current
    if current is None:
        current = maximum
    maximum = max(0, maximum)
    current = min(max(0, current), maximum)
    return {"level": level, "current": current, "maximum": maximum}


def _normalize_spell(raw: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    name = _to_text(raw.get("name"))
    if name is None:
        return None
    comps = _mapping(raw.get("components"))
    out: Dict[str, Any] = {
        "name": name,
        "level": max(0, _to_int(raw.get("level"), 0)),
        "components": {
            "verbal": _to_bool(comps.get("verbal")),
            "somatic": _to_bool(comps.get("somatic")),
        },
        "prepared": _to_bool(raw.get("prepared"), True),
    }
    material = _to_text(comps.get("material"))
    if material is not None:
        out["components"]["material"] = material
    for key in _SPELL_TEXT_FIELDS:
        out[key] = _to_text(raw.get(key), "")
    return out


def _normalize_spellcasting(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in ("spellcastingClass", "spellcastingAbility"):
        v = _to_text(raw.get(key))
        if v is not None:
            out[key] = v
    for key in ("spellSaveDC", "spellAttackBonus"):
        v = _to_int(raw.get(key))
        if v is not None:
            out[key] = v

    slots = []
    for entry in _sequence(raw.get("slots")):
        slot = _normalize_slot(_mapping(entry))
        if slot is None:
            logger.debug("dropping unusable spell slot %r", entry)
            continue
        slots.append(slot)
    out["slots"] = slots

    spells = []
    for entry in _sequence(raw.get("spells")):
        spell = _normalize_spell(_mapping(entry))
        if spell is not None:
            spells.append(spell)
    out["spells"] = spells
    return out


def _normalize_item(raw: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    name = _to_text(raw.get("name"))
    if name is None:
        return None
    item_type = raw.get("type")
    out: Dict[str, Any] = {
        "name": name,
        "quantity": max(0, _to_int(raw.get("quantity"), 1)),
        "type": item_type if item_type in ITEM_TYPES else "other",
    }
    weight = _to_float(raw.get("weight"))
    if weight is not None:
        out["weight"] = weight
    description = _to_text(raw.get("description"))
    if description is not None:
        out["description"] = description
    if raw.get("equipped") is not None:
        out["equipped"] = _to_bool(raw.get("equipped"))
    return out


def _normalize_inventory(raw: Mapping[str, Any]) -> Dict[str, Any]:
    items = []
    for entry in _sequence(raw.get("items")):
        item = _normalize_item(_mapping(entry))
        if item is not None:
            items.append(item)

    money = _mapping(raw.get("currency"))
    currency = {k: max(0, _to_int(money.get(k), 0)) for k in CURRENCY_KEYS}
    return {"items": items, "currency": currency}


def _normalize_layout(raw: Mapping[str, Any]) -> Dict[str, Any]:
    out = default_layout_dict()
    by_id = {s["id"]: s for s in out["sections"]}
    rank = {sid.value: i for i, sid in enumerate(SectionId)}

    for entry in _sequence(raw.get("sections")):
        entry = _mapping(entry)
        sid = entry.get("id")
        if isinstance(sid, SectionId):
            sid = sid.value
        if not isinstance(sid, str) or sid not in by_id:
            continue
        section = by_id[sid]
        section["title"] = _to_text(entry.get("title"), section["title"])
        section["order"] = _to_int(entry.get("order"), section["order"])
        section["visible"] = _to_bool(entry.get("visible"), section["visible"])
        section["collapsed"] = _to_bool(entry.get("collapsed"), section["collapsed"])

    out["sections"] = sorted(
        by_id.values(), key=lambda s: (s["order"], rank[s["id"]])
    )
    theme = raw.get("theme")
    out["theme"] = theme if theme in ("light", "dark") else "light"
    return out


# -----------------------------
# Entry point
# -----------------------------


def _as_fields(partial: SheetInput) -> Mapping[str, Any]:
    if partial is None:
        return {}
    if isinstance(partial, PartialSheet):
        return partial.fields
    if isinstance(partial, CharacterSheet):
        return partial.to_dict()
    return _mapping(partial)


def normalize(partial: SheetInput) -> CharacterSheet:
    """
    Overlay `partial` onto the canonical default record, field by field.
    Never raises on sparse or malformed input.
    """
    fields = _as_fields(partial)
    merged = {
        "info": _normalize_info(_mapping(fields.get("info"))),
        "abilities": _normalize_abilities(_mapping(fields.get("abilities"))),
        "skills": _normalize_skills(_mapping(fields.get("skills"))),
        "spellcasting": _normalize_spellcasting(_mapping(fields.get("spellcasting"))),
        "inventory": _normalize_inventory(_mapping(fields.get("inventory"))),
        "layout": _normalize_layout(_mapping(fields.get("layout"))),
    }
    if isinstance(partial, PartialSheet) and partial.missing:
        logger.debug(
            "normalizing %s sheet, %d fields defaulted", partial.source, len(partial.missing)
        )
    return CharacterSheet.model_validate(merged)


def default_sheet() -> CharacterSheet:
    return normalize(None)
