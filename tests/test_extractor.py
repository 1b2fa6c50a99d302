"""
Entity Extractor Tests

Covers:
- The reference contact-line example (types, order, unique identifiers)
- Normalization of phones, emails and identifiers
- Deduplication by "type:value"
- Structured-record extraction with column hints
- Merging and tier helpers
- Robustness: arbitrary text never raises, repeat calls agree
"""

import re

import pytest

from leadgraph.extraction.extractor import (
    EntityExtractor,
    EntityType,
    ExtractionResult,
    SearchValue,
    field_hint,
    normalize_phone,
)


def _keys(result: ExtractionResult):
    return [e.key for e in result.entities]


def test_contact_line_example():
    extractor = EntityExtractor()
    result = extractor.extract(
        "Contact RAHUL SHARMA at rahul.sharma@gmail.com or 9876543210, PAN ABCDE1234F"
    )

    assert _keys(result) == [
        "phone:9876543210",
        "email:rahul.sharma@gmail.com",
        "id_number:ABCDE1234F",
        "name:rahul sharma",
    ]
    assert [e.search_priority for e in result.entities] == [10, 9, 8, 3]
    assert result.unique_identifiers == ["9876543210", "rahul.sharma@gmail.com", "ABCDE1234F"]

    name = result.entities[-1]
    assert name.search_value == SearchValue.LOW
    assert name.original == "RAHUL SHARMA"

    # "at rahul.sharma@" is not a place
    assert not [e for e in result.entities if e.type == EntityType.LOCATION]


def test_groups_partition_entities():
    result = EntityExtractor().extract("Rahul Sharma from Delhi, 9876543210")

    grouped = (
        result.high_value_entities
        + result.medium_value_entities
        + result.low_value_entities
    )
    assert sorted(e.key for e in grouped) == sorted(_keys(result))
    assert all(e.search_value == SearchValue.HIGH for e in result.high_value_entities)
    assert "location:delhi" in _keys(result)


def test_entities_sorted_by_priority():
    result = EntityExtractor().extract("from Delhi, mail a@b.com, call 9876543210")
    priorities = [e.search_priority for e in result.entities]
    assert priorities == sorted(priorities, reverse=True)


def test_phone_normalization():
    assert normalize_phone("+91 98765 43210") == "9876543210"
    assert normalize_phone("919876543210") == "9876543210"
    assert normalize_phone("098765-43210") == "9876543210"

    result = EntityExtractor().extract("call +91-9876543210 now")
    assert _keys(result) == ["phone:9876543210"]
    assert result.entities[0].original == "9876543210"


def test_duplicate_values_collapse():
    result = EntityExtractor().extract(
        "9876543210 / +91 9876543210 / RAHUL@GMAIL.COM / rahul@gmail.com"
    )
    assert _keys(result).count("phone:9876543210") == 1
    assert _keys(result).count("email:rahul@gmail.com") == 1


def test_phone_not_taken_from_longer_digit_runs():
    result = EntityExtractor().extract("Aadhaar 123498765432")
    assert "phone:9876543210" not in _keys(result)
    assert [e.type for e in result.entities] == [EntityType.ID_NUMBER]


def test_account_and_ifsc():
    result = EntityExtractor().extract("account: 123456789012 IFSC SBIN0001234")
    keys = _keys(result)
    assert "account:123456789012" in keys
    assert "account:SBIN0001234" in keys


def test_non_string_and_blank_input():
    extractor = EntityExtractor()
    assert extractor.extract(None).entities == []
    assert extractor.extract(12345).entities == []
    assert extractor.extract("   ").entities == []


def test_stop_word_names_rejected():
    result = EntityExtractor().extract("West Delhi")
    assert not [e for e in result.entities if e.type == EntityType.NAME]


def test_field_hints():
    assert field_hint("City") == EntityType.LOCATION
    assert field_hint("company_name") == EntityType.COMPANY
    assert field_hint("father_name") == EntityType.NAME
    assert field_hint("bank_name") is None
    assert field_hint("phone") is None


def test_extract_from_record_uses_column_hints():
    result = EntityExtractor().extract_from_record(
        {"phone": "9000000000", "city": "Delhi", "remarks": None, "employer": "Acme Traders"},
        table="b2b"
    )
    keys = _keys(result)
    assert "phone:9000000000" in keys
    assert "location:delhi" in keys
    assert "company:acme traders" in keys


def test_extract_from_record_rejects_non_mapping():
    assert EntityExtractor().extract_from_record(["9876543210"]).entities == []


def test_merge_results_dedupes():
    extractor = EntityExtractor()
    merged = extractor.merge_results([
        extractor.extract("9876543210"),
        extractor.extract("9876543210 a@b.com"),
    ])
    assert _keys(merged) == ["phone:9876543210", "email:a@b.com"]
    assert merged.unique_identifiers == ["9876543210", "a@b.com"]


def test_searchable_and_filter_entities():
    extractor = EntityExtractor()
    result = extractor.extract("Rahul Sharma 9876543210")

    phone, name = result.entities
    assert extractor.is_searchable(phone)
    assert not extractor.is_searchable(name)
    assert extractor.get_filter_entities(result.entities) == [name]


def test_record_values_do_not_become_names():
    result = EntityExtractor().extract_from_record({
        "bank": "HDFC BANK",
        "address": "MG ROAD NEW DELHI",
        "city": "New Delhi",
        "name": "Rahul Sharma",
    })
    names = [e.key for e in result.entities if e.type == EntityType.NAME]

    assert names == ["name:rahul sharma"]
    assert "location:new delhi" in _keys(result)


# ============================================================================
# ROBUSTNESS
# ============================================================================

ODD_INPUTS = [
    "",
    "राहुल शर्मा 9876543210 दिल्ली",
    "😀" * 200,
    "9" * 5000,
    "a@" * 1000,
    "+91" * 300 + " 98765 43210",
    "\x00\x01\n\t{}[]\"'\\",
    "PAN abcde1234f, Aadhaar 1234-5678-9012, acct 000011112222333",
    "Rahul " * 500,
]


@pytest.mark.parametrize("text", ODD_INPUTS)
def test_extract_never_raises_and_is_repeatable(text):
    extractor = EntityExtractor()

    first = extractor.extract(text)
    second = extractor.extract(text)

    assert isinstance(first.entities, list)
    assert _keys(first) == _keys(second)
    assert len(set(_keys(first))) == len(first.entities)


@pytest.mark.parametrize("text", ODD_INPUTS)
def test_extracted_phones_are_valid_mobiles(text):
    for entity in EntityExtractor().extract(text).entities:
        if entity.type == EntityType.PHONE:
            assert re.fullmatch(r"[6-9]\d{9}", entity.value)


@pytest.mark.parametrize("raw", ["12345", "98765", "+1 (555) 010", "abc"])
def test_short_phone_digits_left_unreduced(raw):
    assert normalize_phone(raw) == re.sub(r"\D", "", raw)
