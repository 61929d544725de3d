from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# -----------------------------
# Fixed key sets (JSON names)
# -----------------------------
ABILITY_KEYS: Tuple[str, ...] = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

# canonical key -> label as printed on sheets
SKILL_NAMES: Dict[str, str] = {
    "acrobatics": "Acrobatics",
    "animalHandling": "Animal Handling",
    "arcana": "Arcana",
    "athletics": "Athletics",
    "deception": "Deception",
    "history": "History",
    "insight": "Insight",
    "intimidation": "Intimidation",
    "investigation": "Investigation",
    "medicine": "Medicine",
    "nature": "Nature",
    "perception": "Perception",
    "performance": "Performance",
    "persuasion": "Persuasion",
    "religion": "Religion",
    "sleightOfHand": "Sleight of Hand",
    "stealth": "Stealth",
    "survival": "Survival",
}
SKILL_KEYS: Tuple[str, ...] = tuple(SKILL_NAMES)

# lower-cased label -> canonical key
SKILL_LOOKUP: Dict[str, str] = {label.lower(): key for key, label in SKILL_NAMES.items()}

# code on sheets -> denomination
CURRENCY_CODES: Dict[str, str] = {
    "CP": "copper",
    "SP": "silver",
    "EP": "electrum",
    "GP": "gold",
    "PP": "platinum",
}
CURRENCY_KEYS: Tuple[str, ...] = tuple(CURRENCY_CODES.values())

ItemType = Literal["weapon", "armor", "equipment", "consumable", "other"]
ITEM_TYPES: Tuple[str, ...] = ("weapon", "armor", "equipment", "consumable", "other")
Theme = Literal["light", "dark"]


class SectionId(str, Enum):
    """The five display groupings; also the unit of an edit session."""

    CHARACTER_INFO = "characterInfo"
    ABILITIES = "abilities"
    SKILLS = "skills"
    SPELLS = "spells"
    INVENTORY = "inventory"


# section -> CharacterSheet attribute holding its payload
SECTION_ATTRS: Dict[SectionId, str] = {
    SectionId.CHARACTER_INFO: "info",
    SectionId.ABILITIES: "abilities",
    SectionId.SKILLS: "skills",
    SectionId.SPELLS: "spellcasting",
    SectionId.INVENTORY: "inventory",
}

SECTION_TITLES: Dict[SectionId, str] = {
    SectionId.CHARACTER_INFO: "Character Info",
    SectionId.ABILITIES: "Abilities",
    SectionId.SKILLS: "Skills",
    SectionId.SPELLS: "Spells",
    SectionId.INVENTORY: "Inventory",
}


class _Model(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# -----------------------------
# Character info
# -----------------------------
class HitPoints(_Model):
    current: int
    maximum: int
    temporary: int = 0  # shown as 0 when the source does not mention it


class CharacterInfo(_Model):
    name: Optional[str] = None
    character_class: Optional[str] = Field(default=None, alias="class")
    level: Optional[int] = None
    race: Optional[str] = None
    background: Optional[str] = None
    alignment: Optional[str] = None
    experience: Optional[int] = None
    armor_class: Optional[int] = None
    initiative: Optional[int] = None
    speed: Optional[int] = None
    hit_points: Optional[HitPoints] = None


# -----------------------------
# Abilities & skills
# -----------------------------
class Ability(_Model):
    score: int = 10
    modifier: int = 0
    saving_throw_proficient: bool = False


class AbilitySet(_Model):
    strength: Ability
    dexterity: Ability
    constitution: Ability
    intelligence: Ability
    wisdom: Ability
    charisma: Ability


class Skill(_Model):
    proficient: bool = False
    expertise: bool = False
    modifier: int = 0


class SkillSet(_Model):
    acrobatics: Skill
    animal_handling: Skill
    arcana: Skill
    athletics: Skill
    deception: Skill
    history: Skill
    insight: Skill
    intimidation: Skill
    investigation: Skill
    medicine: Skill
    nature: Skill
    perception: Skill
    performance: Skill
    persuasion: Skill
    religion: Skill
    sleight_of_hand: Skill
    stealth: Skill
    survival: Skill


# -----------------------------
# Spellcasting
# -----------------------------
class SpellSlot(_Model):
    level: int = Field(..., ge=1)
    current: int
    maximum: int

    @model_validator(mode="after")
    def _clamp_current(self) -> "SpellSlot":
        # out-of-range slot counts are clamped, never rejected
        if self.maximum < 0:
            self.maximum = 0
        if self.current > self.maximum:
            self.current = self.maximum
        if self.current < 0:
            self.current = 0
        return self


class SpellComponents(_Model):
    verbal: bool = False
    somatic: bool = False
    material: Optional[str] = None


class Spell(_Model):
    name: str = Field(..., min_length=1)
    level: int = 0
    school: str = ""
    casting_time: str = ""
    range: str = ""
    components: SpellComponents = Field(default_factory=SpellComponents)
    duration: str = ""
    description: str = ""
    prepared: bool = True


class SpellState(_Model):
    spellcasting_class: Optional[str] = None
    spellcasting_ability: Optional[str] = None
    spell_save_dc: Optional[int] = Field(default=None, alias="spellSaveDC")
    spell_attack_bonus: Optional[int] = None
    slots: List[SpellSlot] = Field(default_factory=list)
    spells: List[Spell] = Field(default_factory=list)


# -----------------------------
# Inventory
# -----------------------------
class Item(_Model):
    name: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=0)
    weight: Optional[float] = None
    description: Optional[str] = None
    equipped: Optional[bool] = None
    type: ItemType = "other"


class Currency(_Model):
    copper: int = Field(default=0, ge=0)
    silver: int = Field(default=0, ge=0)
    electrum: int = Field(default=0, ge=0)
    gold: int = Field(default=0, ge=0)
    platinum: int = Field(default=0, ge=0)


class Inventory(_Model):
    items: List[Item] = Field(default_factory=list)
    currency: Currency = Field(default_factory=Currency)


# -----------------------------
# Layout
# -----------------------------
class Section(_Model):
    id: SectionId
    title: str
    order: int
    visible: bool = True
    collapsed: bool = False


class Layout(_Model):
    sections: List[Section]
    theme: Theme = "light"

    @model_validator(mode="after")
    def _unique_ids(self) -> "Layout":
        ids = [s.id for s in self.sections]
        if len(ids) != len(set(ids)):
            raise ValueError("layout section ids must be unique")
        return self

    def ordered(self) -> List[Section]:
        return sorted(self.sections, key=lambda s: s.order)


# -----------------------------
# Root aggregate
# -----------------------------
class CharacterSheet(_Model):
    info: CharacterInfo
    abilities: AbilitySet
    skills: SkillSet
    spellcasting: SpellState
    inventory: Inventory
    layout: Layout

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def section_payload(self, section: SectionId) -> _Model:
        return getattr(self, SECTION_ATTRS[section])


# -----------------------------
# Extractor output
# -----------------------------
@dataclass
class PartialSheet:
    """
    Extractor output before defaults are applied.

    `fields` uses the JSON key names of CharacterSheet and may hold any subset;
    `missing` lists dotted paths the extractor looked for but could not find.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    source: str = "unknown"
    raw_text: Optional[str] = None

    def section(self, key: str) -> Dict[str, Any]:
        return self.fields.setdefault(key, {})


# -----------------------------
# JSON Schema export
# -----------------------------
def export_json_schema() -> dict:
    """Export the JSON Schema of the canonical record (Pydantic v2)."""
    return CharacterSheet.model_json_schema(by_alias=True)
