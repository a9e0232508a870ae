"""Coordinate labels, parsing, and grid iteration."""

import pytest

from labvault.core.exceptions import InvalidCoordinate
from labvault.models.enums import LabelSchema
from labvault.services.coordinates import (
    canonical_coordinate,
    coordinate_in_grid,
    coordinate_label,
    iter_grid_coordinates,
    normalize_coordinate,
    parse_coordinate,
    row_label,
)


@pytest.mark.parametrize(
    ("row", "col", "expected"),
    [(0, 0, "A1"), (1, 2, "B3"), (7, 11, "H12"), (25, 0, "Z1"), (27, 4, "AB5")],
)
def test_alpha_numeric_labels(row, col, expected):
    assert coordinate_label(row, col, LabelSchema.ALPHA_NUMERIC) == expected


def test_numeric_labels_are_one_indexed():
    assert coordinate_label(0, 0, LabelSchema.NUMERIC) == "1-1"
    assert coordinate_label(2, 11, LabelSchema.NUMERIC) == "3-12"


def test_custom_schema_falls_back_to_row_col_label():
    assert coordinate_label(0, 0, LabelSchema.CUSTOM) == "R1C1"
    assert coordinate_label(4, 9, "custom") == "R5C10"


def test_missing_schema_defaults_to_alpha_numeric():
    assert coordinate_label(0, 1, None) == "A2"


def test_row_letters_continue_past_z():
    assert row_label(25) == "Z"
    assert row_label(26) == "AA"
    assert row_label(51) == "AZ"
    assert row_label(701) == "ZZ"
    assert row_label(702) == "AAA"


def test_negative_indices_rejected():
    with pytest.raises(InvalidCoordinate):
        coordinate_label(-1, 0)
    with pytest.raises(InvalidCoordinate):
        row_label(-3)


def test_labels_are_deterministic():
    first = [label for _, _, label in iter_grid_coordinates(8, 12)]
    second = [label for _, _, label in iter_grid_coordinates(8, 12)]
    assert first == second
    assert len(set(first)) == 96


def test_iteration_is_row_major():
    labels = [label for _, _, label in iter_grid_coordinates(2, 2)]
    assert labels == ["A1", "A2", "B1", "B2"]


@pytest.mark.parametrize(
    ("label", "schema", "expected"),
    [
        ("A1", LabelSchema.ALPHA_NUMERIC, (0, 0)),
        (" b3 ", LabelSchema.ALPHA_NUMERIC, (1, 2)),
        ("AA1", LabelSchema.ALPHA_NUMERIC, (26, 0)),
        ("2-5", LabelSchema.NUMERIC, (1, 4)),
        ("r3c4", LabelSchema.CUSTOM, (2, 3)),
    ],
)
def test_parse_coordinate(label, schema, expected):
    assert parse_coordinate(label, schema) == expected


@pytest.mark.parametrize(
    ("label", "schema"),
    [
        ("A0", LabelSchema.ALPHA_NUMERIC),
        ("1-1", LabelSchema.ALPHA_NUMERIC),
        ("A1", LabelSchema.NUMERIC),
        ("0-3", LabelSchema.NUMERIC),
        ("", LabelSchema.ALPHA_NUMERIC),
        ("shelf", LabelSchema.CUSTOM),
    ],
)
def test_parse_rejects_malformed_labels(label, schema):
    with pytest.raises(InvalidCoordinate):
        parse_coordinate(label, schema)


def test_parse_is_inverse_of_label():
    for schema in LabelSchema:
        for row, col, label in iter_grid_coordinates(3, 4, schema):
            assert parse_coordinate(label, schema) == (row, col)


def test_invalid_coordinate_is_a_value_error():
    with pytest.raises(ValueError):
        parse_coordinate("??")


def test_canonical_coordinate_strips_zero_padding():
    assert canonical_coordinate("a01") == "A1"
    assert canonical_coordinate("01-002", LabelSchema.NUMERIC) == "1-2"


def test_coordinate_in_grid():
    assert coordinate_in_grid("H12", 8, 12)
    assert not coordinate_in_grid("I1", 8, 12)
    assert not coordinate_in_grid("A13", 8, 12)
    assert not coordinate_in_grid("junk", 8, 12)


def test_normalize_coordinate():
    assert normalize_coordinate(" a1 ") == "A1"
    assert normalize_coordinate("") is None
    assert normalize_coordinate(None) is None
