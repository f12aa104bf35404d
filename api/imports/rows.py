"""
Postal-code CSV rows: parsing, validation and normalization.

The input is the Japan Post style headerless CSV with 15 positional columns.
Only four of them are persisted; the rest are carried through parsing so a
row always has the full shape.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import Iterator

CSV_FIELDS: tuple[str, ...] = (
    "jis_code",
    "old_zipcode",
    "zipcode",
    "prefecture_kana",
    "city_kana",
    "town_kana",
    "prefecture",
    "city",
    "town",
    "partial_match",
    "koaza_exist",
    "chome_exist",
    "multiple_town",
    "update_status",
    "update_reason",
)

ZIPCODE_LENGTH = 7

# Japan Post lists this instead of a town name when the code covers the
# whole city.
NO_TOWN_PLACEHOLDER = "以下に掲載がない場合"


@dataclass(frozen=True)
class AddressRow:
    zipcode: str
    prefecture: str
    city: str
    town: str | None


def is_valid_row(row: dict[str, str]) -> bool:
    zipcode = row.get("zipcode") or ""
    return bool(zipcode) and bool(row.get("prefecture")) and bool(row.get("city")) and len(zipcode) == ZIPCODE_LENGTH


def normalize_town(town: str | None) -> str | None:
    """
    Collapse "no town given" spellings to None; pass anything else through.
    """
    if not town or not town.strip() or town == NO_TOWN_PLACEHOLDER:
        return None
    return town


def to_address_row(row: dict[str, str]) -> AddressRow:
    return AddressRow(
        zipcode=row["zipcode"],
        prefecture=row["prefecture"],
        city=row["city"],
        town=normalize_town(row.get("town")),
    )


def iter_csv_rows(path: str, *, encoding: str = "utf-8") -> Iterator[dict[str, str]]:
    """
    Yield one dict per CSV line, keyed by CSV_FIELDS, in file order.

    Short lines are padded with empty strings; extra columns are dropped.
    I/O and decoding errors propagate to the caller.
    """
    with open(path, newline="", encoding=encoding) as fh:
        reader = csv.DictReader(fh, fieldnames=CSV_FIELDS, restval="")
        for row in reader:
            row.pop(None, None)
            yield row


def collect_valid_rows(path: str, *, encoding: str = "utf-8") -> list[AddressRow]:
    """
    Stream the file and keep only admissible rows. Blocking; run it off the loop.
    """
    return [to_address_row(row) for row in iter_csv_rows(path, encoding=encoding) if is_valid_row(row)]
