"""Property-based tests for payload normalization."""

import pytest
from bson import ObjectId
from hypothesis import given, settings
from hypothesis import strategies as st

from grattis.core.normalize import looks_like_object_id, normalize, normalize_value

object_id_strings = st.from_regex(r"[0-9a-fA-F]{24}", fullmatch=True)
plain_strings = st.text(max_size=40).filter(lambda s: not looks_like_object_id(s))
other_values = (
    st.none()
    | st.booleans()
    | st.integers()
    | st.floats(allow_nan=False)
    | st.lists(st.integers(), max_size=3)
    | st.dictionaries(st.text(max_size=5), object_id_strings, max_size=3)
)


def test_reference_and_plain_string():
    """An ObjectId-like string becomes an ObjectId, other strings stay strings."""
    result = normalize({"ref": "507f1f77bcf86cd799439011", "note": "hi"})

    assert result["ref"] == ObjectId("507f1f77bcf86cd799439011")
    assert isinstance(result["ref"], ObjectId)
    assert result["note"] == "hi"
    assert isinstance(result["note"], str)


def test_uppercase_hex_is_converted():
    result = normalize({"ref": "507F1F77BCF86CD799439011"})
    assert result["ref"] == ObjectId("507f1f77bcf86cd799439011")


def test_non_strings_pass_through_even_if_they_coerce_to_hex():
    """Values that only look like an id after str() are not converted."""
    big = 123456789012345678901234  # 24 digits
    nested = {"ref": "507f1f77bcf86cd799439011"}
    existing = ObjectId()

    result = normalize({"big": big, "nested": nested, "existing": existing})

    assert result["big"] == big
    assert result["nested"] == {"ref": "507f1f77bcf86cd799439011"}
    assert isinstance(result["nested"]["ref"], str)
    assert result["existing"] is existing


@pytest.mark.parametrize(
    "value",
    [
        "507f1f77bcf86cd79943901",  # 23 chars
        "507f1f77bcf86cd7994390111",  # 25 chars
        "507f1f77bcf86cd79943901g",  # non-hex
        "507f1f77bcf86cd799439011\n",
        " 507f1f77bcf86cd799439011",
        "",
    ],
)
def test_near_miss_strings_stay_strings(value):
    assert normalize_value(value) == value


def test_input_is_not_mutated():
    payload = {"ref": "507f1f77bcf86cd799439011"}
    normalize(payload)
    assert payload == {"ref": "507f1f77bcf86cd799439011"}


def test_rejects_non_mapping():
    with pytest.raises(TypeError, match="mapping"):
        normalize(["507f1f77bcf86cd799439011"])  # type: ignore[arg-type]


def test_rejects_non_string_keys():
    with pytest.raises(TypeError, match="keys must be strings"):
        normalize({1: "x"})  # type: ignore[dict-item]


@given(value=object_id_strings)
@settings(max_examples=100)
def test_any_object_id_string_is_converted(value: str):
    """For any 24-hex string, the stored value SHALL be the equivalent ObjectId."""
    result = normalize({"ref": value})["ref"]
    assert isinstance(result, ObjectId)
    assert str(result) == value.lower()


@given(value=plain_strings | other_values)
@settings(max_examples=100)
def test_everything_else_is_unchanged(value):
    """For any value that is not an ObjectId-like string, normalize SHALL return it as-is."""
    assert normalize({"v": value})["v"] == value
