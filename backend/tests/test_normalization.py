import pytest

from driver_identity.services.normalization import full_name, is_placeholder_name, normalize_name, tokenize_name


def test_normalize_name_lowercases_and_collapses_whitespace():
    assert normalize_name("  john   SMITH ") == "john smith"
    assert normalize_name("John\tSmith\n") == "john smith"


def test_normalize_name_strips_punctuation():
    assert normalize_name("O'Brien, Pat") == "obrien pat"
    assert normalize_name("Smith-Jones, J.") == "smithjones j"


def test_normalize_name_keeps_digits():
    assert normalize_name("Driver 42") == "driver 42"


@pytest.mark.parametrize("value", [None, "", "   ", 42, ["John"]])
def test_normalize_name_is_null_safe(value):
    assert normalize_name(value) == ""


def test_normalize_name_is_idempotent():
    once = normalize_name("  Mary-Anne   O'NEIL ")
    assert normalize_name(once) == once


def test_tokenize_name():
    assert tokenize_name("Smith,  John") == ["smith", "john"]
    assert tokenize_name(None) == []


def test_full_name_skips_missing_parts():
    assert full_name("John", "Smith") == "John Smith"
    assert full_name(None, "Smith") == "Smith"
    assert full_name("  ", None) == ""


@pytest.mark.parametrize("value", ["", "   ", None, "Unknown", "UNKNOWN DRIVER", "no driver", "Unassigned", "null"])
def test_placeholder_names(value):
    assert is_placeholder_name(value)


def test_real_names_are_not_placeholders():
    assert not is_placeholder_name("John Smith")
    assert not is_placeholder_name("Knowles")


@pytest.mark.parametrize("value", ["None", "Na", "Driver"])
def test_single_tokens_that_can_be_names_are_not_placeholders(value):
    assert not is_placeholder_name(value)
