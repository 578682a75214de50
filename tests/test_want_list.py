"""Want-list CSV export/import and applying a list to the binder."""

import pytest

from binder.services.want_list import apply_list, export_csv, import_csv, total_price

INVENTORY = [
    {"card_id": 89631139, "name": "Blue-Eyes White Dragon", "set_code": "LOB-001",
     "set_rarity": "Ultra Rare", "quantity": 2, "price": 12.5},
    {"card_id": 89631139, "name": "Blue-Eyes White Dragon", "set_code": "SDK-001",
     "set_rarity": "Ultra Rare", "quantity": 3, "price": 4.1},
    {"card_id": 46986414, "name": "Dark Magician", "set_code": "LOB-005",
     "set_rarity": "Ultra Rare", "quantity": 1, "price": 7.25},
    {"card_id": 46986414, "name": "Dark Magician", "set_code": "SDY-006",
     "set_rarity": "Common", "quantity": 4, "price": 0.5},
]


def test_export_csv():
    items = [
        {"card_id": 46986414, "name": "Dark Magician", "set_code": "LOB-005",
         "set_rarity": "Ultra Rare", "quantity": 1},
        {"card_id": 1, "name": "Card, With Comma", "set_code": "X-1", "set_rarity": "Rare", "quantity": 2},
    ]
    assert export_csv(items) == (
        "46986414,Dark Magician,LOB-005,Ultra Rare,1\n"
        '1,"Card, With Comma",X-1,Rare,2'
    )


def test_total_price():
    items = [{"price": 12.5, "quantity": 2}, {"price": 0.333, "quantity": 3}, {"quantity": 1}]
    assert total_price(items) == 26.0


def test_exact_match():
    report = import_csv("89631139,Blue-Eyes White Dragon,LOB-001,Ultra Rare,2", INVENTORY)

    assert len(report.items) == 1
    assert report.items[0]["set_code"] == "LOB-001"
    assert report.items[0]["quantity"] == 2
    assert report.items[0]["max_quantity"] == 2
    assert len(report.success) == 1
    assert report.warnings == []


def test_partial_match_on_set_code_warns():
    report = import_csv("46986414,Dark Magician,LOB-005,Secret Rare,1", INVENTORY)

    assert report.items[0]["set_rarity"] == "Ultra Rare"
    assert len(report.warnings) == 1
    assert "Mismatch" in report.warnings[0]


def test_falls_back_to_cheapest_print():
    report = import_csv("46986414,Dark Magician,MRD-999,Super Rare,1", INVENTORY)

    assert report.items[0]["set_code"] == "SDY-006"
    assert "cheapest" in report.warnings[0]


def test_unknown_card_is_an_error():
    report = import_csv("12345,Nobody,ZZZ-000,Rare,1", INVENTORY)

    assert report.items == []
    assert len(report.errors) == 1


def test_quantity_clamped_to_owned_stock():
    text = "\n".join([
        "89631139,Blue-Eyes White Dragon,LOB-001,Ultra Rare,1",
        "89631139,Blue-Eyes White Dragon,LOB-001,Ultra Rare,5",
    ])
    report = import_csv(text, INVENTORY)

    assert len(report.items) == 1
    assert report.items[0]["quantity"] == 2
    assert len(report.success) == 1
    assert len(report.partial_success) == 1


def test_bad_lines_are_skipped_with_warnings():
    text = "\n".join([
        "only,three,fields",
        "abc,Dark Magician,LOB-005,Ultra Rare,1",
        "46986414,Dark Magician,LOB-005,Ultra Rare,0",
        "",
        "46986414,Dark Magician,LOB-005,Ultra Rare,1",
    ])
    report = import_csv(text, INVENTORY)

    assert len(report.warnings) == 3
    assert len(report.items) == 1
    assert report.to_dict()["total_price"] == 7.25


def test_quoted_names_survive_import():
    inventory = [{"card_id": 7, "name": "Card, With Comma", "set_code": "X-1",
                  "set_rarity": "Rare", "quantity": 1, "price": 1.0}]
    report = import_csv('7,"Card, With Comma",X-1,Rare,1', inventory)

    assert report.errors == []
    assert report.warnings == []
    assert report.items[0]["name"] == "Card, With Comma"


# ── apply_list ────────────────────────────────────────────────────────────────

async def test_apply_remove_deletes_rows_at_zero(owned_store):
    blue, _ = await owned_store.add(89631139, "Blue-Eyes White Dragon", "LOB-001", "Ultra Rare", 2, 12.5)
    dark, _ = await owned_store.add(46986414, "Dark Magician", "LOB-005", "Ultra Rare", 1, 7.25)
    items = [
        {**blue, "quantity": 1},
        {**dark, "quantity": 1},
        {"card_id": 1, "name": "Ghost", "set_code": "NOPE-1", "set_rarity": "Rare", "quantity": 1},
    ]

    result = await apply_list(items, "remove", owned_store)

    assert len(result["applied"]) == 1
    assert len(result["removed"]) == 1
    assert len(result["skipped"]) == 1
    assert (await owned_store.get(blue["id"])).quantity == 1
    assert await owned_store.get(dark["id"]) is None


async def test_apply_add(owned_store):
    card, _ = await owned_store.add(46986414, "Dark Magician", "LOB-005", "Ultra Rare", 1, 7.25)

    result = await apply_list([{**card, "quantity": 2}], "add", owned_store)

    assert result["mode"] == "add"
    assert (await owned_store.get(card["id"])).quantity == 3


async def test_apply_rejects_unknown_mode(owned_store):
    with pytest.raises(ValueError):
        await apply_list([], "swap", owned_store)
