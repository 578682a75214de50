"""
binder/services/want_list.py
═══════════════════════════════════════════════════════════════════════════════
Want-list helpers. The list itself lives in the browser session; the server
only converts it to/from CSV and applies it to the inventory.

CSV line:  card_id,name,set_code,set_rarity,quantity

Import matching, per line:
  1. exact    card_id + set_code + set_rarity + name
  2. partial  same card_id, and set_code OR set_rarity agrees   (warning)
  3. cheapest same card_id, lowest price                        (warning)
  4. none     → error, line not added
Requested quantities are clamped to what the binder actually holds.
═══════════════════════════════════════════════════════════════════════════════
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from binder.store import OwnedCardStore

log = logging.getLogger("want_list")

CSV_FIELDS = 5


def item_key(item: dict) -> tuple:
    return (item.get("card_id"), item.get("set_code"), item.get("set_rarity"))


def total_price(items: Iterable[dict]) -> float:
    return round(sum((i.get("price") or 0) * (i.get("quantity") or 0) for i in items), 2)


def export_csv(items: Iterable[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for i in items:
        writer.writerow([i["card_id"], i["name"], i["set_code"], i["set_rarity"], i["quantity"]])
    return buf.getvalue().rstrip("\n")


@dataclass
class ImportReport:
    items:           list[dict] = field(default_factory=list)
    success:         list[str]  = field(default_factory=list)
    partial_success: list[str]  = field(default_factory=list)
    errors:          list[str]  = field(default_factory=list)
    warnings:        list[str]  = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "items":           self.items,
            "total_price":     total_price(self.items),
            "success":         self.success,
            "partial_success": self.partial_success,
            "errors":          self.errors,
            "warnings":        self.warnings,
        }


def _to_int(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


def _match(card_id: int, name: str, set_code: str, set_rarity: str,
           inventory: list[dict], report: ImportReport, line_no: int) -> Optional[dict]:
    for c in inventory:
        if (c["card_id"] == card_id and c["set_code"] == set_code
                and c["set_rarity"] == set_rarity and c["name"] == name):
            return c

    same_id = [c for c in inventory if c["card_id"] == card_id]
    if not same_id:
        report.errors.append(f'Line {line_no}: Card "{name}" (ID: {card_id}) not found in binder - not added')
        return None

    for c in same_id:
        if c["set_code"] == set_code or c["set_rarity"] == set_rarity:
            report.warnings.append(
                f'Line {line_no}: Mismatch for "{name}" - using "{c["name"]}" [{c["set_code"]}] {c["set_rarity"]}'
            )
            return c

    cheapest = min(same_id, key=lambda c: c.get("price") or 0)
    report.warnings.append(
        f'Line {line_no}: Mismatch for "{name}" - using cheapest option '
        f'"{cheapest["name"]}" [{cheapest["set_code"]}] {cheapest["set_rarity"]}'
    )
    return cheapest


def import_csv(text: str, inventory: list[dict]) -> ImportReport:
    """Build a want list from CSV text, matched against the inventory rows."""
    report = ImportReport()
    by_key: dict[tuple, dict] = {}

    for line_no, line in enumerate(text.strip().splitlines(), start=1):
        if not line.strip():
            continue
        parts = [p.strip() for p in next(csv.reader([line]))]
        if len(parts) != CSV_FIELDS:
            report.warnings.append(
                f"Line {line_no}: Malformed CSV (expected {CSV_FIELDS} fields, got {len(parts)}) - skipped"
            )
            continue

        id_str, name, set_code, set_rarity, qty_str = parts
        card_id  = _to_int(id_str)
        quantity = _to_int(qty_str)
        if card_id is None:
            report.warnings.append(f'Line {line_no}: Invalid ID "{id_str}" - skipped')
            continue
        if quantity is None or quantity < 1:
            report.warnings.append(f'Line {line_no}: Invalid quantity "{qty_str}" - skipped')
            continue

        card = _match(card_id, name, set_code, set_rarity, inventory, report, line_no)
        if card is None:
            continue

        key       = item_key(card)
        held      = by_key[key]["quantity"] if key in by_key else 0
        available = max(card["quantity"] - held, 0)
        added     = min(quantity, available)

        if added == quantity:
            report.success.append(f'Line {line_no}: Added {added}x "{card["name"]}" [{card["set_code"]}]')
        else:
            report.partial_success.append(
                f'Line {line_no}: Only {available} of {quantity} "{card["name"]}" '
                f'[{card["set_code"]}] available - added {added}'
            )
        if added == 0:
            continue

        if key in by_key:
            by_key[key]["quantity"] += added
        else:
            by_key[key] = {
                "card_id":         card["card_id"],
                "name":            card["name"],
                "set_code":        card["set_code"],
                "set_rarity":      card["set_rarity"],
                "quantity":        added,
                "price":           card.get("price") or 0,
                "image_url":       card.get("image_url", ""),
                "image_url_small": card.get("image_url_small", ""),
                "max_quantity":    card["quantity"],
            }
            report.items.append(by_key[key])

    log.info(
        f"CSV import: {len(report.items)} items, {len(report.errors)} errors, "
        f"{len(report.warnings)} warnings"
    )
    return report


async def apply_list(items: list[dict], mode: str, owned: OwnedCardStore) -> dict:
    """
    mode="add"    → each matching owned card gains the item quantity
    mode="remove" → each matching owned card loses it; rows at 0 are deleted
    """
    if mode not in ("add", "remove"):
        raise ValueError(f"unknown mode {mode!r}")
    sign = 1 if mode == "add" else -1

    applied, removed, skipped = [], [], []
    for item in items:
        card = await owned.find(item["card_id"], item["set_code"])
        if card is None or card.set_rarity != item["set_rarity"]:
            skipped.append(f'{item["name"]} [{item["set_code"]}] not in binder')
            continue
        change = await owned.adjust_quantity(card.id, sign * item["quantity"])
        if change is None:
            skipped.append(f'{item["name"]} [{item["set_code"]}] not in binder')
        elif change.removed:
            removed.append(f'{item["name"]} [{item["set_code"]}]')
        else:
            applied.append(f'{item["quantity"]}x {item["name"]} [{item["set_code"]}]')

    log.info(f"List {mode}: {len(applied)} applied, {len(removed)} removed, {len(skipped)} skipped")
    return {"mode": mode, "applied": applied, "removed": removed, "skipped": skipped}
