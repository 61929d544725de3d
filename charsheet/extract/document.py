"""
document.py

Document extractor for a scraped character profile page.

Walks the parsed markup with structural selectors (see layout.yaml) instead of
text patterns. All lookups are reads; the input tree is never modified.
Missing or unparsable numeric nodes fall back to score 10 / quantity 1.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from bs4 import BeautifulSoup, Tag

from charsheet.model.schema import (
    ABILITY_KEYS,
    CURRENCY_KEYS,
    SKILL_KEYS,
    SKILL_LOOKUP,
    PartialSheet,
)

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT_PATH = Path(__file__).resolve().parent / "layout.yaml"

DEFAULT_SCORE = 10
DEFAULT_QUANTITY = 1

_INFO_INT_FIELDS = ("level", "experience", "armorClass", "initiative", "speed")
_NON_NUMERIC_RE = re.compile(r"[^0-9-]")
_WEIGHT_RE = re.compile(r"\d+(?:\.\d+)?")

Markup = Union[BeautifulSoup, Tag]


# ---------- selector taxonomy ----------


@dataclass
class PageLayout:
    info: Dict[str, str]
    hit_points: Dict[str, str]
    abilities: Dict[str, str]
    skills: Dict[str, str]
    currency: Dict[str, str]
    spells: Dict[str, str]
    items: Dict[str, str]
    active_class: str = "active"
    # (type, whole-word keyword pattern) in priority order
    item_types: List[Tuple[str, re.Pattern]] = field(default_factory=list)


def keyword_pattern(keywords: List[str]) -> re.Pattern:
    """Whole words only, with an optional plural s: "axe" hits "Axes", not "Taxes"."""
    alt = "|".join(
        re.escape(str(k)).replace(r"\ ", r"\s+")
        for k in sorted(keywords, key=lambda k: len(str(k)), reverse=True)
    )
    return re.compile(rf"\b(?:{alt})s?\b", re.I)


def load_layout(path: Optional[Path] = None) -> PageLayout:
    raw = yaml.safe_load((path or DEFAULT_LAYOUT_PATH).read_text(encoding="utf-8"))
    return PageLayout(
        info=dict(raw.get("info", {})),
        hit_points=dict(raw.get("hit_points", {})),
        abilities=dict(raw["abilities"]),
        skills=dict(raw["skills"]),
        currency=dict(raw.get("currency", {})),
        spells=dict(raw.get("spells", {})),
        items=dict(raw["items"]),
        active_class=raw.get("active_class", "active"),
        item_types=[
            (r["type"], keyword_pattern(r["keywords"]))
            for r in raw.get("item_types", [])
            if r.get("keywords")
        ],
    )


# ---------- node helpers ----------


def _node_text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    text = node.get_text(" ", strip=True)
    return text or None


def _select_text(scope: Markup, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    return _node_text(scope.select_one(selector))


def parse_signed(text: Optional[str]) -> Optional[int]:
    """'+4' -> 4, '-1' -> -1, '16 pts' -> 16; None when nothing numeric remains."""
    if not text:
        return None
    digits = _NON_NUMERIC_RE.sub("", text.replace("\u2212", "-"))
    try:
        return int(digits)
    except ValueError:
        return None


def _is_active(node: Optional[Tag], active_class: str) -> bool:
    return node is not None and active_class in (node.get("class") or [])


def classify_item(text: str, item_types: List[Tuple[str, re.Pattern]]) -> str:
    """weapon > armor > consumable > equipment > other, by whole-word keyword."""
    for item_type, pattern in item_types:
        if pattern.search(text):
            return item_type
    return "other"


# ---------- extractor ----------


class DocumentExtractor:
    def __init__(self, layout: Optional[PageLayout] = None):
        self.layout = layout or load_layout()

    def extract(self, document: Markup) -> PartialSheet:
        out = PartialSheet(source="html")
        self._info(document, out)
        self._abilities(document, out)
        self._skills(document, out)
        self._currency(document, out)
        self._spells(document, out)
        self._items(document, out)
        logger.debug(
            "document extraction: %d sections, %d fields missing",
            len(out.fields),
            len(out.missing),
        )
        return out

    def _info(self, doc: Markup, out: PartialSheet) -> None:
        info: Dict[str, Any] = {}
        for key, selector in self.layout.info.items():
            text = _select_text(doc, selector)
            value = parse_signed(text) if key in _INFO_INT_FIELDS else text
            if value is None:
                out.missing.append(f"info.{key}")
                continue
            info[key] = value

        hp = {
            key: parse_signed(_select_text(doc, selector))
            for key, selector in self.layout.hit_points.items()
        }
        hp = {k: v for k, v in hp.items() if v is not None}
        if "current" in hp or "maximum" in hp:
            info["hitPoints"] = hp
        else:
            out.missing.append("info.hitPoints")
        if info:
            out.fields["info"] = info

    def _abilities(self, doc: Markup, out: PartialSheet) -> None:
        sel = self.layout.abilities
        abilities: Dict[str, Dict[str, Any]] = {}
        for key in ABILITY_KEYS:
            block = doc.select_one(sel["block"].format(key=key))
            if block is None:
                out.missing.append(f"abilities.{key}")
                continue
            score = parse_signed(_select_text(block, sel["score"]))
            modifier = parse_signed(_select_text(block, sel["modifier"]))
            abilities[key] = {
                "score": DEFAULT_SCORE if score is None else score,
                "modifier": 0 if modifier is None else modifier,
                "savingThrowProficient": _is_active(
                    block.select_one(sel["saving_throw"]), self.layout.active_class
                ),
            }
        if abilities:
            out.fields["abilities"] = abilities

    def _skills(self, doc: Markup, out: PartialSheet) -> None:
        sel = self.layout.skills
        skills: Dict[str, Dict[str, Any]] = {}
        for box in doc.select(sel["box"]):
            label = _select_text(box, sel["label"])
            if not label:
                continue
            key = SKILL_LOOKUP.get(" ".join(label.split()).lower())
            if key is None:
                logger.debug("unrecognized skill label %r", label)
                continue
            modifier = parse_signed(_select_text(box, sel["modifier"]))
            skills[key] = {
                "proficient": _is_active(
                    box.select_one(sel["proficiency"]), self.layout.active_class
                ),
                "expertise": _is_active(
                    box.select_one(sel["expertise"]), self.layout.active_class
                ),
                "modifier": 0 if modifier is None else modifier,
            }
        out.missing.extend(f"skills.{k}" for k in SKILL_KEYS if k not in skills)
        if skills:
            out.fields["skills"] = skills

    def _currency(self, doc: Markup, out: PartialSheet) -> None:
        node_sel = self.layout.currency.get("node")
        currency: Dict[str, int] = {}
        for key in CURRENCY_KEYS:
            amount = parse_signed(_select_text(doc, node_sel.format(key=key))) if node_sel else None
            if amount is None:
                out.missing.append(f"inventory.currency.{key}")
                continue
            currency[key] = amount
        if currency:
            out.section("inventory")["currency"] = currency

    def _spells(self, doc: Markup, out: PartialSheet) -> None:
        sel = self.layout.spells
        if not sel.get("row"):
            return
        spells: List[Dict[str, Any]] = []
        for row in doc.select(sel["row"]):
            name = _select_text(row, sel.get("name"))
            if not name:
                continue
            level = parse_signed(_select_text(row, sel.get("level")))
            spells.append(
                {
                    "name": name,
                    "level": 0 if level is None else level,
                    "school": _select_text(row, sel.get("school")) or "",
                    "castingTime": _select_text(row, sel.get("casting_time")) or "",
                    "range": _select_text(row, sel.get("range")) or "",
                    "duration": _select_text(row, sel.get("duration")) or "",
                    "prepared": _is_active(
                        row.select_one(sel["prepared"]) if sel.get("prepared") else None,
                        self.layout.active_class,
                    ),
                }
            )
        if spells:
            out.section("spellcasting")["spells"] = spells
        else:
            out.missing.append("spellcasting.spells")

    def _items(self, doc: Markup, out: PartialSheet) -> None:
        sel = self.layout.items
        items: List[Dict[str, Any]] = []
        for box in doc.select(sel["box"]):
            name = _select_text(box, sel["name"])
            if not name:
                continue
            quantity = parse_signed(_select_text(box, sel.get("quantity")))
            description = _select_text(box, sel.get("description"))
            item: Dict[str, Any] = {
                "name": name,
                "quantity": DEFAULT_QUANTITY if quantity is None else quantity,
                "type": classify_item(
                    f"{name} {description or ''}", self.layout.item_types
                ),
            }
            weight_text = _select_text(box, sel.get("weight"))
            m = _WEIGHT_RE.search(weight_text) if weight_text else None
            if m:
                item["weight"] = float(m.group(0))
            if description:
                item["description"] = description
            equipped_sel = sel.get("equipped")
            if equipped_sel:
                node = box.select_one(equipped_sel)
                if node is not None:
                    item["equipped"] = _is_active(node, self.layout.active_class)
            items.append(item)
        if items:
            out.section("inventory")["items"] = items
        else:
            out.missing.append("inventory.items")


def extract_document(document: Markup, layout: Optional[PageLayout] = None) -> PartialSheet:
    """Functional entry point mirroring extract_text for markup sources."""
    return DocumentExtractor(layout).extract(document)
