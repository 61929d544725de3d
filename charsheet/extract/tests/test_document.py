import pytest
from bs4 import BeautifulSoup

from charsheet.extract.document import (
    DocumentExtractor,
    classify_item,
    extract_document,
    load_layout,
    parse_signed,
)
from charsheet.normalize.normalizer import normalize

PROFILE_HTML = """
<html><body>
  <header>
    <h1 class="character-name">Thorin Oakenshield</h1>
    <span class="character-class">Fighter</span>
    <span class="character-level">Level 7</span>
    <span class="character-race">Dwarf</span>
    <span class="armor-class-value">18</span>
    <span class="initiative-value">+1</span>
    <span class="speed-value">25 ft.</span>
    <span class="hp-current">60</span><span class="hp-max">68</span>
  </header>

  <div data-ability="strength">
    <span class="ability-score-value">16</span>
    <span class="ability-modifier">+3</span>
    <span class="saving-throw-proficiency active"></span>
  </div>
  <div data-ability="dexterity">
    <span class="ability-score-value">--</span>
    <span class="ability-modifier"></span>
    <span class="saving-throw-proficiency"></span>
  </div>

  <div class="skill-box">
    <span class="skill-proficiency active"></span>
    <span class="skill-name">Animal Handling</span>
    <span class="skill-modifier">+4</span>
  </div>
  <div class="skill-box">
    <span class="skill-proficiency active"></span>
    <span class="skill-expertise active"></span>
    <span class="skill-name">Stealth</span>
    <span class="skill-modifier">+8</span>
  </div>
  <div class="skill-box">
    <span class="skill-name">Basket Weaving</span>
    <span class="skill-modifier">+9</span>
  </div>

  <span data-currency="gold">150</span>
  <span data-currency="copper">7</span>

  <div class="spell-row">
    <span class="spell-name">Shield</span>
    <span class="spell-level">1</span>
    <span class="spell-school">Abjuration</span>
    <span class="spell-prepared active"></span>
  </div>

  <div class="item-box">
    <span class="item-name">Longsword</span>
    <span class="item-quantity">1</span>
    <span class="item-weight">3 lb.</span>
    <span class="item-equipped active"></span>
  </div>
  <div class="item-box">
    <span class="item-name">Potion of Healing</span>
    <span class="item-quantity">x3</span>
    <span class="item-description">Regain 2d4+2 hit points</span>
  </div>
  <div class="item-box">
    <span class="item-name">Rope</span>
  </div>
  <div class="item-box"><span class="item-quantity">4</span></div>
</body></html>
"""


def _soup() -> BeautifulSoup:
    return BeautifulSoup(PROFILE_HTML, "html.parser")


def test_animal_handling_marked_proficient():
    skills = normalize(extract_document(_soup())).skills
    assert skills.animal_handling.proficient is True
    assert skills.animal_handling.modifier == 4
    assert skills.animal_handling.expertise is False
    assert skills.stealth.expertise is True
    assert skills.arcana.proficient is False


def test_unknown_skill_labels_are_ignored():
    partial = extract_document(_soup())
    assert set(partial.fields["skills"]) == {"animalHandling", "stealth"}


def test_input_tree_is_not_modified():
    soup = _soup()
    before = str(soup)
    extract_document(soup)
    assert str(soup) == before


def test_info_and_hit_points():
    info = normalize(extract_document(_soup())).info
    assert info.name == "Thorin Oakenshield"
    assert info.character_class == "Fighter"
    assert info.level == 7
    assert info.race == "Dwarf"
    assert info.armor_class == 18
    assert info.initiative == 1
    assert info.speed == 25
    assert (info.hit_points.current, info.hit_points.maximum) == (60, 68)


def test_abilities_fall_back_when_unparsable_or_absent():
    partial = extract_document(_soup())
    abilities = normalize(partial).abilities
    assert (abilities.strength.score, abilities.strength.modifier) == (16, 3)
    assert abilities.strength.saving_throw_proficient is True
    assert (abilities.dexterity.score, abilities.dexterity.modifier) == (10, 0)
    assert abilities.dexterity.saving_throw_proficient is False
    assert "abilities.wisdom" in partial.missing
    assert abilities.wisdom.score == 10


def test_currency_spells_and_items():
    sheet = normalize(extract_document(_soup()))
    assert sheet.inventory.currency.gold == 150
    assert sheet.inventory.currency.copper == 7
    assert sheet.inventory.currency.platinum == 0

    [shield] = sheet.spellcasting.spells
    assert (shield.name, shield.level, shield.school, shield.prepared) == (
        "Shield",
        1,
        "Abjuration",
        True,
    )

    items = {i.name: i for i in sheet.inventory.items}
    assert set(items) == {"Longsword", "Potion of Healing", "Rope"}
    assert items["Longsword"].type == "weapon"
    assert items["Longsword"].weight == 3.0
    assert items["Longsword"].equipped is True
    assert items["Potion of Healing"].quantity == 3
    assert items["Potion of Healing"].type == "consumable"
    assert items["Rope"].quantity == 1
    assert items["Rope"].type == "other"
    assert items["Rope"].equipped is None


def test_empty_page_degrades_to_defaults():
    partial = DocumentExtractor().extract(BeautifulSoup("<p>Nothing here</p>", "html.parser"))
    assert partial.source == "html"
    assert "info.name" in partial.missing
    sheet = normalize(partial)
    assert sheet.info.name is None
    assert sheet.inventory.items == []


def test_parse_signed():
    assert parse_signed("+4") == 4
    assert parse_signed("-1") == -1
    assert parse_signed("\u22122") == -2
    assert parse_signed("16 pts") == 16
    assert parse_signed("") is None
    assert parse_signed("--") is None
    assert parse_signed(None) is None


def test_classify_item_priority():
    types = load_layout().item_types
    assert classify_item("Shield of Faith", types) == "armor"
    assert classify_item("Battleaxe", types) == "weapon"
    assert classify_item("Scroll of Fireball", types) == "consumable"
    assert classify_item("Thieves' Tools", types) == "equipment"
    assert classify_item("Lantern", types) == "other"
    assert classify_item("Longbow", types) == "weapon"
    assert classify_item("Chain Mail", types) == "armor"
    assert classify_item("Rations", types) == "consumable"


@pytest.mark.parametrize(
    "name", ["Rainbow Silk Scarf", "Spearmint Leaves", "Kitten", "Email Ledger", "Taxes Owed"]
)
def test_classify_item_matches_whole_words_only(name):
    assert classify_item(name, load_layout().item_types) == "other"
