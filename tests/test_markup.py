"""Tests for markup helpers."""

import pytest

from clientsideeye.utils.markup import (clip, has_disabled_class, pad_right, scrub_value_attributes,
                                        strip_disabled_class)


def test_clip():
    assert clip(None) == ""
    assert clip("short") == "short"
    assert clip("x" * 10, limit=4) == "xxxx…"


@pytest.mark.parametrize("class_name,expected", [
    ("btn disabled primary", "btn primary"),
    ("DISABLED", ""),
    ("  btn   disabled  ", "btn"),
    ("btn-disabled", "btn-disabled"),
    ("", ""),
])
def test_strip_disabled_class(class_name, expected):
    assert strip_disabled_class(class_name) == expected


def test_has_disabled_class():
    assert has_disabled_class("btn-disabled")
    assert has_disabled_class("is Disabled")
    assert not has_disabled_class("undisabled")
    assert not has_disabled_class(None)


def test_scrub_value_attributes():
    markup = '<input value="a" VALUE="b" data-value="c">'
    assert scrub_value_attributes(markup) == (
        '<input value="REDACTED" value="REDACTED" data-value="REDACTED">'
    )
    assert scrub_value_attributes(None) is None


def test_pad_right():
    assert pad_right("ab", 4) == "ab  "
    assert pad_right("abcd", 4) == "abc…"
    assert pad_right(None, 3) == "   "
