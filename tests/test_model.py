"""Tests for the series/BOM/group model."""

import pytest

from bomix.errors import (
    MissingMainPart,
    MissingRequiredField,
    SeriesAlreadyInitialized,
    SeriesNotInitialized,
    StoreClosed,
)
from bomix.records import GroupDraft, Part
from bomix.store.model import BomModel, is_matrix_empty, normalize_data


def _bom(project="P1", phase="A", version="1", **extra):
    return {"project": project, "phase": phase, "version": version, **extra}


def _group(item="R1", mfg="ACME", mfg_pn="X1", alternates=()):
    parts = [{"house_pn": "H1", "mfg": mfg, "mfg_pn": mfg_pn, "is_main": True}]
    parts += [{"house_pn": f"H{i + 2}", "mfg": m, "mfg_pn": pn, "is_main": False}
              for i, (m, pn) in enumerate(alternates)]
    return {"process": "SMD", "item": item, "qty": 1, "location": item, "parts": parts}


def test_normalize_data_drops_blank_values():
    assert normalize_data({"a": "", "b": None, "c": 0, "d": False, "e": "x"}) == {
        "c": 0, "d": False, "e": "x"
    }


def test_is_matrix_empty():
    assert is_matrix_empty([])
    assert is_matrix_empty(["", "", None])
    assert is_matrix_empty({0: "", 1: []})
    assert not is_matrix_empty(["", "ACME_X1"])


def test_series_initialized_once(model):
    series = model.get_series_info()

    assert series["type"] == "series"
    assert series["name"] == "Series A"
    assert series["note"] == "test series"
    assert series["filename"] == "series"
    assert series["config"] == {"selected_boms": {"common": [], "matrix": [], "bccl": []}}

    with pytest.raises(SeriesAlreadyInitialized):
        model.init_series("Again")


def test_blank_note_is_not_stored(tmp_path):
    db = BomModel(tmp_path / "s.db", autocompact_interval=None)
    try:
        series = db.init_series("S")
        assert "note" not in series
    finally:
        db.close()


def test_update_series_config(model):
    updated = model.update_series_config({"selected_boms": {"common": ["b1"]}})

    assert updated["config"]["selected_boms"] == {"common": ["b1"], "matrix": [], "bccl": []}

    with pytest.raises(MissingRequiredField) as excinfo:
        model.update_series_config({"other": 1})
    assert excinfo.value.fields == ["selected_boms"]


def test_update_series_config_without_series(tmp_path):
    db = BomModel(tmp_path / "empty.db", autocompact_interval=None)
    try:
        assert db.get_series_info() is None
        with pytest.raises(SeriesNotInitialized):
            db.update_series_config({"selected_boms": {}})
    finally:
        db.close()


def test_update_series_info_unsets_blank_fields(model):
    updated = model.update_series_info({"name": "Renamed", "note": ""})

    assert updated["name"] == "Renamed"
    assert "note" not in updated
    assert model.get_series_info() == updated


def test_statistics_counts_distinct_values(model):
    model.create_bom(_bom("P1", "A", "1"))
    model.create_bom(_bom("P1", "A", "2"))
    model.create_bom(_bom("P2", "B", "1"))

    assert model.get_statistics() == {"project_count": 2, "phase_count": 2, "bom_count": 3}


def test_create_bom_defaults_date_and_drops_blanks(model):
    bom = model.create_bom(_bom(description="", pca_pn="PCA-1"))

    assert bom["type"] == "bom"
    assert bom["date"]
    assert bom["pca_pn"] == "PCA-1"
    assert "description" not in bom
    assert bom["created_at"] == bom["updated_at"]


def test_create_bom_with_same_triple_replaces_it(model):
    first = model.create_bom(_bom(description="old"))
    model.create_group(first["_id"], _group())

    second = model.create_bom(_bom(description="new"))

    assert second["_id"] == first["_id"]
    assert second["description"] == "new"
    assert second["created_at"] == first["created_at"]
    assert len(model.get_all_boms()) == 1
    assert model.get_groups_by_bom_id(first["_id"]) == []


def test_create_group_sets_join_key_from_main_part(model):
    bom = model.create_bom(_bom())

    group = model.create_group(bom["_id"], _group(alternates=[("ACME", "X2")]))

    assert group["bom_id"] == bom["_id"]
    assert group["join_key"] == "ACME_X1"
    assert [p["is_main"] for p in group["parts"]] == [True, False]
    assert "matrix" not in group


def test_create_group_accepts_group_draft(model):
    bom = model.create_bom(_bom())
    draft = GroupDraft(
        process="PTH",
        item="J1",
        parts=(Part(house_pn="H1", mfg="CONN", mfg_pn=100.0, is_main=True),),
    )

    group = model.create_group(bom["_id"], draft)

    assert group["join_key"] == "CONN_100"
    assert group["parts"][0]["house_pn"] == "H1"


def test_create_group_requires_exactly_one_main_part(model):
    bom = model.create_bom(_bom())
    no_main = _group()
    no_main["parts"][0]["is_main"] = False
    two_mains = _group(alternates=[("ACME", "X2")])
    two_mains["parts"][1]["is_main"] = True

    with pytest.raises(MissingMainPart):
        model.create_group(bom["_id"], no_main)
    with pytest.raises(MissingMainPart):
        model.create_group(bom["_id"], two_mains)
    assert model.get_groups_by_bom_id(bom["_id"]) == []


def test_create_group_for_missing_bom(model):
    with pytest.raises(LookupError):
        model.create_group("missing", _group())


def test_import_bom_is_all_or_nothing(model):
    bad = _group("R2")
    bad["parts"][0]["is_main"] = False

    with pytest.raises(MissingMainPart):
        model.import_bom(_bom(), [_group("R1"), bad])

    assert model.get_all_boms() == []


def test_full_bom_round_trip(model):
    bom = model.import_bom(_bom(), [_group("R1"), _group("R2", mfg_pn="X9")])

    full = model.get_full_bom(bom["_id"])

    assert {g["item"] for g in full["groups"]} == {"R1", "R2"}
    assert full["project"] == "P1"
    assert model.get_full_bom("missing") is None


def test_delete_boms_cascades_to_groups(model):
    keep = model.import_bom(_bom("P1"), [_group()])
    drop = model.import_bom(_bom("P2"), [_group(), _group("R2")])

    assert model.delete_boms([drop["_id"]]) == 1

    assert [b["_id"] for b in model.get_all_boms()] == [keep["_id"]]
    assert model.get_groups_by_bom_id(drop["_id"]) == []
    assert len(model.get_groups_by_bom_id(keep["_id"])) == 1
    assert model.delete_boms([]) == 0


def test_get_all_boms_newest_first(model):
    model.create_bom(_bom("P1"))
    model.create_bom(_bom("P2"))

    assert [b["project"] for b in model.get_all_boms()] == ["P2", "P1"]


def test_find_groups_by_join_key(model):
    a = model.import_bom(_bom("P1"), [_group()])
    b = model.import_bom(_bom("P2"), [_group()])

    assert len(model.find_groups_by_join_key("ACME_X1")) == 2
    found = model.find_groups_by_join_key("ACME_X1", bom_id=b["_id"])
    assert [g["bom_id"] for g in found] == [b["_id"]]
    assert model.find_groups_by_join_key("ACME_X1", bom_id=a["_id"])[0]["bom_id"] == a["_id"]


def test_update_group_matrix_and_empty_collapse(model):
    bom = model.import_bom(_bom(), [_group()])
    group_id = bom["groups"][0]["_id"]

    updated = model.update_group_matrix(group_id, ["ACME_X1", "", "ACME_X2"])
    assert updated["matrix"] == ["ACME_X1", "", "ACME_X2"]

    cleared = model.update_group_matrix(group_id, ["", "", ""])
    assert "matrix" not in cleared
    assert "matrix" not in model.get_groups_by_bom_id(bom["_id"])[0]


def test_closed_model_raises_store_closed(tmp_path):
    db = BomModel(tmp_path / "s.db", autocompact_interval=None)
    db.init_series("S")
    db.close()

    assert db.closed
    with pytest.raises(StoreClosed):
        db.get_all_boms()
    with pytest.raises(StoreClosed):
        db.create_bom(_bom())


def test_replacing_bom_with_blank_date_keeps_a_date(model):
    first = model.create_bom(_bom(date="2024-01-02"))

    second = model.create_bom(_bom(date=""))

    assert second["_id"] == first["_id"]
    assert second["date"]
    assert second["date"] != "2024-01-02"
