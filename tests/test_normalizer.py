"""
Tests for email batch normalization
"""
from partner_portal.services.normalizer import (
    normalize_emails,
    parse_csv,
    parse_list,
    parse_tags,
    split_tags,
)


def test_lowercases_and_trims():
    batch = normalize_emails(["  Alice@Example.COM ", "bob@example.com"])
    assert batch.candidates == ["alice@example.com", "bob@example.com"]
    assert batch.invalid == []
    assert batch.received == 2


def test_loose_validity_only_requires_at_sign():
    batch = normalize_emails(["a@b", "no-at-sign", "", "   ", "@"])
    assert batch.candidates == ["a@b", "@"]
    assert batch.invalid == ["no-at-sign", "", ""]
    assert batch.received == 5


def test_repeats_are_kept_once_and_reported():
    batch = normalize_emails(["x@y.com", "X@Y.com", "z@y.com", "x@y.com"])
    assert batch.candidates == ["x@y.com", "z@y.com"]
    assert batch.duplicates == ["x@y.com", "x@y.com"]


def test_empty_batch():
    batch = normalize_emails([])
    assert batch.is_empty
    assert batch.received == 0


def test_split_tags_handles_commas_and_newlines():
    assert split_tags("a@x.com, b@x.com\nc@x.com,,\n") == ["a@x.com", "b@x.com", "c@x.com"]
    assert split_tags("") == []


def test_parse_tags():
    batch = parse_tags("A@x.com, junk, b@x.com")
    assert batch.candidates == ["a@x.com", "b@x.com"]
    assert batch.invalid == ["junk"]


def test_parse_list_flattens_comma_entries():
    batch = parse_list(["a@x.com, b@x.com", "c@x.com", ""])
    assert batch.candidates == ["a@x.com", "b@x.com", "c@x.com"]
    assert batch.invalid == [""]
    assert batch.received == 4


def test_csv_skips_header_and_blank_lines():
    text = "email,name\nfirst@x.com,First\n\n  \nsecond@x.com,Second\n"
    batch = parse_csv(text)
    assert batch.candidates == ["first@x.com", "second@x.com"]
    assert batch.received == 2


def test_csv_uses_first_column_only():
    batch = parse_csv("email,other\nnot-an-email,real@x.com\n")
    assert batch.candidates == []
    assert batch.invalid == ["not-an-email"]


def test_csv_with_repeats():
    batch = parse_csv("email\na@b.com\nA@B.com\nbad\n")
    assert batch.candidates == ["a@b.com"]
    assert batch.duplicates == ["a@b.com"]
    assert batch.invalid == ["bad"]
    assert batch.received == 3


def test_csv_header_only():
    assert parse_csv("email\n").received == 0
    assert parse_csv("").received == 0
