"""
Answer value utilities.

Pure functions for comparing and coercing raw answer values.
These are mechanical operations with no knowledge of rules or fields.

Design principles:
- Pure functions (no side effects)
- Total: never raise, non-comparable input degrades to a neutral result
- Loose semantics: form answers arrive as strings, numbers, booleans,
  lists of strings or file references, and rules are authored without
  knowing which

Contents:
- is_empty(): Absent / None / "" / empty sequence check
- is_sequence(): List-like check that excludes strings
- parse_number(): Strict decimal string parsing, NaN when not finite
- to_number(): Numeric coercion, NaN when not numeric
- to_text(): String coercion used for substring tests
- loose_equals(): Equality where numeric strings match numbers

Usage:
    from formengine.utils.values import is_empty, loose_equals

    is_empty([])             # True
    loose_equals("5", 5)     # True
"""

import math
import re
from typing import Any


NAN = float('nan')

# Plain decimal with optional sign, fraction and exponent. No 'inf',
# 'nan', 'Infinity' or '1_000', which float() would otherwise accept.
_DECIMAL = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?', re.ASCII)


def is_sequence(value: Any) -> bool:
    """
    Check if a value is a list-like answer (list, tuple, set).

    Strings and bytes are NOT sequences for rule purposes.

    Examples:
        >>> is_sequence(['a', 'b'])
        True
        >>> is_sequence('ab')
        False
    """
    return isinstance(value, (list, tuple, set, frozenset))


def is_empty(value: Any) -> bool:
    """
    Check if an answer counts as empty.

    Empty means: None, the empty string, or an empty sequence.
    Zero and False are NOT empty.

    Examples:
        >>> is_empty(None)
        True
        >>> is_empty('')
        True
        >>> is_empty([])
        True
        >>> is_empty(0)
        False
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ''
    if is_sequence(value):
        return len(value) == 0
    return False


def to_number(value: Any) -> float:
    """
    Coerce an answer to a float.

    Rules:
    - bool -> 1.0 / 0.0
    - int / float -> float (NaN for ints too large for a float)
    - plain decimal string -> float (see parse_number)
    - anything else, including None and "" -> NaN

    Args:
        value: Raw answer or rule target

    Returns:
        float, possibly NaN. Comparisons against NaN are always False.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return NAN
    if isinstance(value, str):
        return parse_number(value)
    return NAN


def parse_number(text: str) -> float:
    """
    Parse a decimal string, surrounding whitespace allowed.

    Returns:
        float, or NaN when text is not a plain decimal or the result is
        not finite ('1e999')

    Examples:
        >>> parse_number(' -2.5e3 ')
        -2500.0
        >>> math.isnan(parse_number('inf'))
        True
    """
    text = text.strip()
    if not _DECIMAL.fullmatch(text):
        return NAN
    number = float(text)
    if not math.isfinite(number):
        return NAN
    return number


def to_text(value: Any) -> str:
    """
    Coerce an answer to text for substring matching.

    Falsy values (None, "", 0, False) become the empty string.
    Booleans render lowercase and integral floats drop their ".0",
    so a stored 5.0 matches a rule target of "5".
    """
    if not value:
        return ''
    if isinstance(value, bool):
        return 'true'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def loose_equals(left: Any, right: Any) -> bool:
    """
    Loose equality between an answer and a rule target.

    - None equals only None
    - number vs string: the string is coerced to a number
    - bool vs number/string: the bool is treated as 1/0
    - everything else: plain equality

    Examples:
        >>> loose_equals('5', 5)
        True
        >>> loose_equals(None, '')
        False
        >>> loose_equals(True, 1)
        True
    """
    if left is None or right is None:
        return left is None and right is None

    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, bool):
            return left == right
        return _numbers_equal(to_number(left), to_number(right))

    if _is_numeric(left) and isinstance(right, str):
        return _numbers_equal(to_number(left), to_number(right))

    if isinstance(left, str) and _is_numeric(right):
        return _numbers_equal(to_number(left), to_number(right))

    return left == right


def _numbers_equal(left: float, right: float) -> bool:
    if math.isnan(left) or math.isnan(right):
        return False
    return left == right
