import logging

import pytest

from charsheet.errors import EditWithoutLoadedSheet, InvalidInput, NoActiveEdit
from charsheet.model.schema import SectionId, SpellSlot
from charsheet.repository import RepositoryState, SheetRepository


@pytest.fixture
def repo(store, broker):
    return SheetRepository(store, broker)


@pytest.fixture
def loaded(repo, sample_sheet):
    repo.import_sheet(sample_sheet)
    return repo


def test_subscriber_gets_current_value_immediately(repo, sample_sheet):
    seen = []
    repo.subscribe(seen.append)
    assert seen == [None]
    repo.import_sheet(sample_sheet)
    assert seen[-1] == sample_sheet
    assert repo.state is RepositoryState.LOADED


def test_published_values_are_copies(loaded):
    seen = []
    loaded.subscribe(seen.append)
    seen[0].info.name = "Mallory"
    current = loaded.current
    current.abilities.strength.score = 3
    assert loaded.current.info.name == "Aria Moonwhisper"
    assert loaded.current.abilities.strength.score == 10


def test_edit_session_is_isolated_until_commit(loaded):
    session = loaded.begin_edit(SectionId.CHARACTER_INFO)
    assert loaded.state is RepositoryState.EDITING
    assert loaded.editing_section is SectionId.CHARACTER_INFO

    session.payload.hit_points.current = 5
    assert loaded.current.info.hit_points.current == 27

    loaded.cancel_edit()
    assert loaded.state is RepositoryState.LOADED
    assert loaded.current.info.hit_points.current == 27

    session = loaded.begin_edit("characterInfo")
    session.payload.hit_points.current = 5
    loaded.commit_edit()
    assert loaded.current.info.hit_points.current == 5
    assert loaded.state is RepositoryState.LOADED


def test_commit_merges_only_the_edited_section(loaded):
    untouched = ("info", "skills", "spellcasting", "inventory", "layout")
    before = {key: loaded.current.to_dict()[key] for key in untouched}

    session = loaded.begin_edit(SectionId.ABILITIES)
    session.staged.info.name = "Not committed"
    session.staged.inventory.currency.gold = 999
    session.staged.spellcasting.spells.clear()
    session.staged.layout.theme = "dark"
    session.payload.strength.score = 18
    loaded.commit_edit()

    after = loaded.current.to_dict()
    assert after["abilities"]["strength"]["score"] == 18
    for key in untouched:
        assert after[key] == before[key], key


def test_commit_normalizes_staged_values(loaded):
    session = loaded.begin_edit(SectionId.SPELLS)
    session.payload.slots.append(SpellSlot(level=2, current=1, maximum=2))
    session.payload.slots[-1].current = 9
    sheet = loaded.commit_edit()
    slot = sheet.spellcasting.slots[-1]
    assert (slot.level, slot.current, slot.maximum) == (2, 2, 2)


def test_commit_persists_and_notifies(loaded, store, broker):
    session = loaded.begin_edit(SectionId.INVENTORY)
    session.payload.currency.gold = 75
    loaded.commit_edit()
    assert store.load().inventory.currency.gold == 75
    assert broker.current.kind == "success"


def test_edit_requires_a_loaded_sheet(repo):
    with pytest.raises(EditWithoutLoadedSheet):
        repo.begin_edit(SectionId.SKILLS)
    assert repo.state is RepositoryState.EMPTY
    assert repo.session is None


def test_commit_and_cancel_require_a_session(loaded):
    with pytest.raises(NoActiveEdit):
        loaded.commit_edit()
    with pytest.raises(NoActiveEdit):
        loaded.cancel_edit()


def test_unknown_section_rejected(loaded):
    with pytest.raises(InvalidInput):
        loaded.begin_edit("backstory")


def test_second_begin_edit_replaces_the_first(loaded, caplog):
    first = loaded.begin_edit(SectionId.SKILLS)
    first.payload.stealth.proficient = True
    with caplog.at_level(logging.WARNING, logger="charsheet.repository"):
        loaded.begin_edit(SectionId.ABILITIES)
    assert "discarded" in caplog.text
    assert loaded.editing_section is SectionId.ABILITIES
    loaded.commit_edit()
    assert loaded.current.skills.stealth.proficient is False


def test_import_discards_active_stage(loaded, sample_sheet):
    session = loaded.begin_edit(SectionId.CHARACTER_INFO)
    session.payload.name = "Staged"
    other = sample_sheet.model_copy(deep=True)
    other.info.name = "Imported"
    loaded.import_sheet(other)
    assert loaded.state is RepositoryState.LOADED
    assert loaded.current.info.name == "Imported"
    with pytest.raises(NoActiveEdit):
        loaded.commit_edit()


def test_session_update_by_path(loaded):
    session = loaded.begin_edit(SectionId.CHARACTER_INFO)
    session.update("hitPoints.current", 12)
    session.update("class", "Sorcerer")
    loaded.commit_edit()
    assert loaded.current.info.hit_points.current == 12
    assert loaded.current.info.character_class == "Sorcerer"

    session = loaded.begin_edit(SectionId.INVENTORY)
    session.update("items.0.quantity", 5)
    loaded.commit_edit()
    assert loaded.current.inventory.items[0].quantity == 5


@pytest.mark.parametrize(
    "path,value",
    [("nickname", "x"), ("hitPoints.mana", 3), ("level", "high"), ("hitPoints.current.x", 1)],
)
def test_session_update_rejects_bad_paths(loaded, path, value):
    session = loaded.begin_edit(SectionId.CHARACTER_INFO)
    with pytest.raises(InvalidInput):
        session.update(path, value)


def test_move_section_renumbers(loaded):
    sheet = loaded.move_section(SectionId.SPELLS, 0)
    ordered = sheet.layout.ordered()
    assert [s.id for s in ordered] == [
        SectionId.SPELLS,
        SectionId.CHARACTER_INFO,
        SectionId.ABILITIES,
        SectionId.SKILLS,
        SectionId.INVENTORY,
    ]
    assert [s.order for s in ordered] == [1, 2, 3, 4, 5]

    sheet = loaded.move_section("characterInfo", 99)
    assert sheet.layout.ordered()[-1].id is SectionId.CHARACTER_INFO
    assert len({s.id for s in sheet.layout.sections}) == 5


def test_visibility_collapse_and_theme(loaded, store):
    loaded.set_section_visible(SectionId.INVENTORY, False)
    loaded.set_section_collapsed(SectionId.SKILLS, True)
    loaded.set_theme("dark")
    layout = store.load().layout
    by_id = {s.id: s for s in layout.sections}
    assert by_id[SectionId.INVENTORY].visible is False
    assert by_id[SectionId.SKILLS].collapsed is True
    assert layout.theme == "dark"
    with pytest.raises(InvalidInput):
        loaded.set_theme("neon")


def test_layout_changes_keep_the_edit_session(loaded):
    session = loaded.begin_edit(SectionId.ABILITIES)
    session.payload.charisma.score = 15
    loaded.move_section(SectionId.ABILITIES, 4)
    loaded.commit_edit()
    sheet = loaded.current
    assert sheet.abilities.charisma.score == 15
    assert sheet.layout.ordered()[-1].id is SectionId.ABILITIES


def test_revision_counts_changes(repo, sample_sheet):
    assert repo.revision == 0
    repo.import_sheet(sample_sheet)
    repo.set_theme("dark")
    assert repo.revision == 2
    repo.begin_edit(SectionId.SKILLS)
    repo.cancel_edit()
    assert repo.revision == 2


def test_rehydrate_and_clear(store, broker, sample_sheet):
    first = SheetRepository(store, broker)
    first.import_sheet(sample_sheet)

    second = SheetRepository(store, broker)
    seen = []
    second.subscribe(seen.append)
    assert second.rehydrate() is True
    assert second.current == sample_sheet

    second.clear()
    assert second.state is RepositoryState.EMPTY
    assert seen[-1] is None
    assert store.load() is None
    assert SheetRepository(store, broker).rehydrate() is False


def test_rehydrate_tolerates_malformed_layout_ids(store, broker, sample_sheet):
    data = sample_sheet.to_dict()
    data["layout"]["sections"].insert(0, {"id": [1], "order": 0})
    data["layout"]["sections"].append({"id": {"nested": True}})
    store.put("currentSheet", data)

    repo = SheetRepository(store, broker)
    assert repo.rehydrate() is True
    assert repo.current.info.name == "Aria Moonwhisper"
    assert [s.id for s in repo.current.layout.ordered()] == list(SectionId)


def test_layout_ops_need_a_sheet(repo):
    with pytest.raises(EditWithoutLoadedSheet):
        repo.move_section(SectionId.SKILLS, 0)
