"""
Test answer value helpers
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import math

import pytest

from formengine.utils.values import is_empty, is_sequence, loose_equals, parse_number, to_number, to_text


# ========== is_empty / is_sequence Tests ==========

@pytest.mark.parametrize("value,expected", [
    (None, True),
    ('', True),
    ([], True),
    ((), True),
    (' ', False),
    (0, False),
    (False, False),
    (['a'], False),
])
def test_is_empty(value, expected):
    assert is_empty(value) is expected


def test_strings_are_not_sequences():
    assert is_sequence(['a'])
    assert is_sequence({'a'})
    assert not is_sequence('abc')
    assert not is_sequence({'name': 'cv.pdf'})


# ========== Coercion Tests ==========

def test_to_number():
    assert to_number(' 42 ') == 42.0
    assert to_number(True) == 1.0
    assert to_number(3) == 3.0
    assert math.isnan(to_number(''))
    assert math.isnan(to_number(None))
    assert math.isnan(to_number('forty'))
    assert math.isnan(to_number(['1']))


@pytest.mark.parametrize("raw", ['inf', '-Infinity', 'nan', '1_000', '1e999', '0x1f', '1.2.3', ''])
def test_parse_number_rejects(raw):
    assert math.isnan(parse_number(raw))
    assert math.isnan(to_number(raw))


def test_parse_number_accepts_plain_decimals():
    assert parse_number(' 12 ') == 12.0
    assert parse_number('-0.5') == -0.5
    assert parse_number('.25') == 0.25
    assert parse_number('3.') == 3.0
    assert parse_number('2E-2') == 0.02


def test_loose_equals_rejects_infinity_string():
    assert not loose_equals('inf', float('inf'))


def test_huge_int_is_not_a_number():
    assert math.isnan(to_number(10 ** 400))
    assert not loose_equals(10 ** 400, '1')


def test_to_text():
    assert to_text(None) == ''
    assert to_text(0) == ''
    assert to_text(5.0) == '5'
    assert to_text(True) == 'true'
    assert to_text('Hello') == 'Hello'


# ========== loose_equals Tests ==========

def test_loose_equals_numbers_and_strings():
    assert loose_equals('5', 5)
    assert loose_equals(5.0, '5')
    assert not loose_equals('five', 5)


def test_loose_equals_none():
    assert loose_equals(None, None)
    assert not loose_equals(None, '')
    assert not loose_equals(0, None)


def test_loose_equals_empty_string_never_equals_zero():
    assert not loose_equals('', 0)


def test_loose_equals_booleans():
    assert loose_equals(True, 1)
    assert loose_equals(False, '0')
    assert not loose_equals(True, 'yes')
    assert loose_equals(True, True)
