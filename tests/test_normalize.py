import re

import pytest

from documents.normalize import (
    create_slug,
    is_valid_email,
    normalize_date,
    normalize_time,
)

SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


@pytest.mark.parametrize(
    "title, expected",
    [
        ("React Summit 2025", "react-summit-2025"),
        ("  Hello,   World!  ", "hello-world"),
        ("Node.js -- Deep Dive", "nodejs-deep-dive"),
        ("--Edge--Case--", "edge-case"),
        ("Café & Code", "caf-code"),
        ("tabs\tand\nnewlines", "tabs-and-newlines"),
    ],
)
def test_create_slug(title, expected):
    assert create_slug(title) == expected


@pytest.mark.parametrize(
    "title",
    ["A", "  --  x  --  ", "C++ / C# Meetup!!", "2026: Year of Rust", "Ünïcödé Tïtle", "a - - b"],
)
def test_slug_has_only_lowercase_digits_and_single_dashes(title):
    slug = create_slug(title)
    assert SLUG_RE.match(slug), slug


def test_slug_of_symbols_only_is_empty():
    assert create_slug("!!! ???") == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-3-5", "2024-03-05"),
        ("2024-03-05", "2024-03-05"),
        ("2024/03/05", "2024-03-05"),
        ("03/05/2024", "2024-03-05"),
        ("March 5, 2024", "2024-03-05"),
        ("5 Mar 2024", "2024-03-05"),
        ("2024-03-05T10:30:00Z", "2024-03-05"),
        ("2024-03-05T23:30:00-05:00", "2024-03-06"),
    ],
)
def test_normalize_date(value, expected):
    assert normalize_date(value) == expected


@pytest.mark.parametrize("value", ["not-a-date", "", "2024-02-30", "13/45/2024"])
def test_normalize_date_rejects_invalid(value):
    with pytest.raises(ValueError, match="Invalid event date"):
        normalize_date(value)


@pytest.mark.parametrize(
    "value, expected",
    [("09:05", "09:05"), ("9:05", "09:05"), (" 23:59 ", "23:59"), ("0:00", "00:00")],
)
def test_normalize_time(value, expected):
    assert normalize_time(value) == expected


@pytest.mark.parametrize("value", ["9:5", "0905", "9.05", "09:05 pm", "123:00"])
def test_normalize_time_rejects_bad_format(value):
    with pytest.raises(ValueError, match="Expected format HH:mm"):
        normalize_time(value)


@pytest.mark.parametrize("value", ["24:00", "12:60", "99:99"])
def test_normalize_time_rejects_out_of_range(value):
    with pytest.raises(ValueError, match="range"):
        normalize_time(value)


@pytest.mark.parametrize(
    "value, valid",
    [
        ("a@b.com", True),
        ("first.last@sub.example.org", True),
        ("a@b", False),
        ("a b@c.com", False),
        ("@b.com", False),
        ("a@@b.com", False),
    ],
)
def test_is_valid_email(value, valid):
    assert is_valid_email(value) is valid
