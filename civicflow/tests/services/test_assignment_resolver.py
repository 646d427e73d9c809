from civicflow.models.location import AdministrativeArea
from civicflow.services.assignment_resolver import AssignmentResolver


def test_resolves_named_area_to_its_admin(db, world):
    res = AssignmentResolver().resolve(db, "Connaught Place")

    assert res is not None
    assert res.area.id == world.cp.id
    assert res.admin_id == world.cp_admin.id


def test_match_ignores_case_and_surrounding_whitespace(db, world):
    res = AssignmentResolver().resolve(db, "  karol BAGH ")

    assert res is not None
    assert res.admin_id == world.kb_admin.id


def test_unknown_area_resolves_to_none(db, world):
    assert AssignmentResolver().resolve(db, "Nonexistent Place") is None


def test_blank_or_missing_area_resolves_to_none(db, world):
    svc = AssignmentResolver()
    assert svc.resolve(db, None) is None
    assert svc.resolve(db, "") is None
    assert svc.resolve(db, "   ") is None


def test_area_without_admin_resolves_to_none(db, world):
    assert AssignmentResolver().resolve(db, "Dwarka") is None


def test_inactive_area_is_ignored(db, world):
    world.kb.is_active = False
    db.commit()

    assert AssignmentResolver().resolve(db, "Karol Bagh") is None


def test_ambiguous_name_picks_the_oldest_area(db, world):
    dup = AdministrativeArea(
        district_id=world.district.id,
        name="connaught place",  # differs only by case; district unique key allows it
        code="CP2",
        area_super_admin_id=world.kb_admin.id,
    )
    db.add(dup)
    db.commit()

    res = AssignmentResolver().resolve(db, "Connaught Place")
    assert res.area.id == world.cp.id
