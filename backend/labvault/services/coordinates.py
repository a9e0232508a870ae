"""Slot coordinate labels for storage grids.

Rows and columns are 0-indexed internally. Displayed coordinates are
1-indexed (numeric) or letter-indexed (alpha-numeric):

  alpha-numeric   row 0, col 0  ->  "A1"      row 27, col 4  ->  "AB5"
  numeric         row 0, col 0  ->  "1-1"
  custom          row 0, col 0  ->  "R1C1"    (fallback display label)

All lookups compare normalized (stripped, uppercase) labels.
"""

import re
from collections.abc import Iterator

from labvault.core.exceptions import InvalidCoordinate
from labvault.models.enums import LabelSchema

ROW_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_ALPHA_RE = re.compile(r"^([A-Z]+)(\d+)$")
_NUMERIC_RE = re.compile(r"^(\d+)-(\d+)$")
_CUSTOM_RE = re.compile(r"^R(\d+)C(\d+)$")


def row_label(row: int) -> str:
    """Spreadsheet-style row letters: 0 -> A, 25 -> Z, 26 -> AA."""
    if row < 0:
        raise InvalidCoordinate(f"Row index must be >= 0, got {row}.")
    if row < len(ROW_LETTERS):
        return ROW_LETTERS[row]
    letters = ""
    index = row
    while index >= 0:
        letters = ROW_LETTERS[index % 26] + letters
        index = index // 26 - 1
    return letters


def _row_index(letters: str) -> int:
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - 64)
    return index - 1


def coordinate_label(
    row: int, col: int, schema: LabelSchema | str | None = LabelSchema.ALPHA_NUMERIC
) -> str:
    """Build the display coordinate for a 0-indexed (row, col)."""
    if row < 0 or col < 0:
        raise InvalidCoordinate(f"Grid indices must be >= 0, got ({row}, {col}).")
    schema = LabelSchema(schema) if schema else LabelSchema.ALPHA_NUMERIC
    if schema == LabelSchema.NUMERIC:
        return f"{row + 1}-{col + 1}"
    if schema == LabelSchema.CUSTOM:
        return f"R{row + 1}C{col + 1}"
    return f"{row_label(row)}{col + 1}"


def normalize_coordinate(label: object) -> str | None:
    if label is None:
        return None
    normalized = str(label).strip().upper()
    return normalized or None


def parse_coordinate(
    label: str, schema: LabelSchema | str | None = LabelSchema.ALPHA_NUMERIC
) -> tuple[int, int]:
    """Inverse of coordinate_label: return the 0-indexed (row, col)."""
    normalized = normalize_coordinate(label)
    if normalized is None:
        raise InvalidCoordinate("Coordinate is empty.")
    schema = LabelSchema(schema) if schema else LabelSchema.ALPHA_NUMERIC

    if schema == LabelSchema.NUMERIC:
        match = _NUMERIC_RE.match(normalized)
        if match:
            row, col = int(match.group(1)) - 1, int(match.group(2)) - 1
        else:
            row = col = -1
    elif schema == LabelSchema.CUSTOM:
        match = _CUSTOM_RE.match(normalized)
        if match:
            row, col = int(match.group(1)) - 1, int(match.group(2)) - 1
        else:
            row = col = -1
    else:
        match = _ALPHA_RE.match(normalized)
        if match:
            row, col = _row_index(match.group(1)), int(match.group(2)) - 1
        else:
            row = col = -1

    if row < 0 or col < 0:
        raise InvalidCoordinate(
            f"'{label}' is not a valid {schema.value} coordinate."
        )
    return row, col


def iter_grid_coordinates(
    rows: int, cols: int, schema: LabelSchema | str | None = LabelSchema.ALPHA_NUMERIC
) -> Iterator[tuple[int, int, str]]:
    """Yield (row, col, label) in row-major order, top-left first."""
    for row in range(rows):
        for col in range(cols):
            yield row, col, coordinate_label(row, col, schema)


def coordinate_in_grid(
    label: str, rows: int, cols: int, schema: LabelSchema | str | None = LabelSchema.ALPHA_NUMERIC
) -> bool:
    try:
        row, col = parse_coordinate(label, schema)
    except InvalidCoordinate:
        return False
    return row < rows and col < cols


def canonical_coordinate(
    label: str, schema: LabelSchema | str | None = LabelSchema.ALPHA_NUMERIC
) -> str:
    """Re-render a parsed label, e.g. 'a01' -> 'A1'."""
    row, col = parse_coordinate(label, schema)
    return coordinate_label(row, col, schema)
