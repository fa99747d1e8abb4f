"""
Static reference tables (routes, localized routes, stops, vehicle icons)

Tables are GTFS-style comma-delimited text files. They are loaded once at
startup, never mutated, and queried by key with first-match-wins
semantics. Failed lookups resolve to a sentinel instead of raising.
"""

import csv
import dataclasses
import io
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from src.config import Settings
from src.exceptions import LookupMiss, ReferenceLoadError

logger = logging.getLogger(__name__)

# Returned whenever a lookup cannot produce a value
INVALID_DATA = "無効データ"

DEFAULT_ICON_KEY = "DEFAULT"

# Column layout of the bundled tables
KEY_COLUMN = 0
NAME_COLUMN = 2
DESTINATION_COLUMN = 4
ICON_COLUMN = 1

Row = Tuple[str, ...]


def _unquote(value: str) -> str:
    return value.strip().replace('"', "")


@dataclasses.dataclass(frozen=True)
class ReferenceTable:
    """A header row plus ordered data rows of unquoted string columns"""

    name: str
    header: Row
    rows: Tuple[Row, ...]
    key_index: Dict[str, int] = dataclasses.field(default_factory=dict, compare=False)

    @classmethod
    def from_rows(cls, name: str, header: Row, rows) -> "ReferenceTable":
        rows = tuple(tuple(row) for row in rows)
        key_index = {}
        for position, row in enumerate(rows):
            if row and row[KEY_COLUMN] not in key_index:
                key_index[row[KEY_COLUMN]] = position
        return cls(name=name, header=tuple(header), rows=rows, key_index=key_index)

    def __len__(self):
        return len(self.rows)

    def find_row(self, key: str, key_column: int = KEY_COLUMN) -> Optional[Row]:
        """Return the first data row whose key_column equals key"""
        key = _unquote(key)
        if key_column == KEY_COLUMN:
            position = self.key_index.get(key)
            return None if position is None else self.rows[position]

        for row in self.rows:
            if key_column < len(row) and row[key_column] == key:
                return row
        return None


@dataclasses.dataclass(frozen=True)
class ReferenceTables:
    """The four tables the merger enriches records from"""

    routes: ReferenceTable
    routes_localized: ReferenceTable
    stops: ReferenceTable
    vehicle_icons: ReferenceTable

    def row_counts(self) -> Dict[str, int]:
        return {
            field.name: len(getattr(self, field.name)) for field in dataclasses.fields(self)
        }


def parse_reference_table(name: str, content: str) -> ReferenceTable:
    """
    Parse delimited text into a ReferenceTable

    Lines are trimmed and blank lines dropped. The first remaining line is
    the header. Double-quote wrappers are removed from every column.

    Args:
        name: Table name used in logs
        content: Full text of the table

    Returns:
        ReferenceTable (with no rows if the content is empty)
    """
    lines = [line.strip() for line in content.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return ReferenceTable.from_rows(name, (), ())

    reader = csv.reader(io.StringIO("\n".join(lines)))
    parsed = [[_unquote(column) for column in row] for row in reader]
    return ReferenceTable.from_rows(name, parsed[0], parsed[1:])


def load_reference_table(path, name: Optional[str] = None) -> ReferenceTable:
    """Load one table from disk, raising ReferenceLoadError if it can't be read"""
    path = Path(path)
    name = name or path.stem
    try:
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ReferenceLoadError(
            f"Could not load reference table {name} from {path}: {e}", path=str(path)
        ) from e

    table = parse_reference_table(name, content)
    logger.info("Loaded reference table %s: %d rows from %s", name, len(table), path)
    return table


def load_reference_tables(settings: Settings) -> ReferenceTables:
    """Load all reference tables named by the settings"""
    return ReferenceTables(
        routes=load_reference_table(settings.routes_path, "routes"),
        routes_localized=load_reference_table(settings.routes_localized_path, "routes_localized"),
        stops=load_reference_table(settings.stops_path, "stops"),
        vehicle_icons=load_reference_table(settings.vehicle_icon_path, "vehicle_icons"),
    )


def _find_value(table: ReferenceTable, key, key_column: int, value_column: int) -> str:
    if key is None:
        raise LookupMiss(f"{table.name}: no key given")

    row = table.find_row(str(key), key_column)
    if row is None:
        raise LookupMiss(f"{table.name}: key {key!r} not found in column {key_column}")

    value = row[value_column] if value_column < len(row) else ""
    if not value:
        raise LookupMiss(f"{table.name}: key {key!r} has no value in column {value_column}")
    return value


def lookup(
    table: ReferenceTable, key, key_column: int = KEY_COLUMN, value_column: int = NAME_COLUMN
) -> str:
    """
    Look up the value at value_column for the first row matching key

    Args:
        table: Table to search
        key: Key to match (surrounding quotes are ignored)
        key_column: Column holding the key
        value_column: Column holding the value to return

    Returns:
        The unquoted value, or INVALID_DATA if there is no usable match
    """
    try:
        return _find_value(table, key, key_column, value_column)
    except LookupMiss as e:
        logger.debug("Lookup miss: %s", e)
        return INVALID_DATA
    except Exception as e:
        logger.error("Error looking up %r in %s: %s", key, getattr(table, "name", table), e)
        return INVALID_DATA


def _default_icon_row(table: ReferenceTable) -> Optional[Row]:
    row = table.find_row(DEFAULT_ICON_KEY)
    if row is not None:
        return row
    # Tables without an explicit DEFAULT key fall back to their last row
    return table.rows[-1] if table.rows else None


def resolve_icon(table: ReferenceTable, vehicle_label) -> str:
    """
    Return the icon for a vehicle label

    The first row keyed by the label wins. Otherwise the DEFAULT row is
    used (or the last row when the table has no DEFAULT key).

    Returns:
        Icon value, or "" when the table is empty or unreadable
    """
    try:
        default_row = _default_icon_row(table)
        if default_row is None:
            return ""

        if vehicle_label is not None:
            label = _unquote(str(vehicle_label))
            for row in table.rows:
                if row is default_row:
                    continue
                if row and row[KEY_COLUMN] == label:
                    return row[ICON_COLUMN] if ICON_COLUMN < len(row) else ""

        return default_row[ICON_COLUMN] if ICON_COLUMN < len(default_row) else ""
    except Exception as e:
        logger.error("Error resolving icon for vehicle %r: %s", vehicle_label, e)
        return ""
