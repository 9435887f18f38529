"""Tests for operator tables, IEEE-754 helpers and value rendering."""

import math

import pytest

from backend.calclang.operators import apply_binary, divide, format_value, power


@pytest.mark.parametrize("op,left,right,expected", [
    ("+", 2.0, 3.0, 5.0),
    ("-", 2.0, 3.0, -1.0),
    ("*", 2.0, 3.0, 6.0),
    ("/", 3.0, 2.0, 1.5),
    ("^", 2.0, 10.0, 1024.0),
])
def test_arithmetic(op, left, right, expected):
    assert apply_binary(op, left, right) == expected


@pytest.mark.parametrize("op", [">", "<", ">=", "<=", "==", "!=", "&&", "||"])
def test_relational_and_logical_results_are_zero_or_one(op):
    for left, right in [(1.0, 2.0), (2.0, 2.0), (3.0, 2.0), (0.0, 0.0), (-4.5, 0.0)]:
        assert apply_binary(op, left, right) in (0.0, 1.0)


def test_relational_compares_difference():
    assert apply_binary(">=", 2.0, 2.0) == 1.0
    assert apply_binary("<", 1.0, 2.0) == 1.0
    assert apply_binary("==", 0.1 + 0.2, 0.3) == 0.0
    assert apply_binary("!=", math.inf, math.inf) == 1.0


def test_logical_treats_nonzero_as_true():
    assert apply_binary("&&", -2.0, 0.5) == 1.0
    assert apply_binary("&&", 3.0, 0.0) == 0.0
    assert apply_binary("||", 0.0, 0.0) == 0.0


def test_unknown_binary_operator_raises_key_error():
    with pytest.raises(KeyError):
        apply_binary("%", 1.0, 2.0)


def test_divide_by_zero_follows_ieee():
    assert divide(1.0, 0.0) == math.inf
    assert divide(-1.0, 0.0) == -math.inf
    assert divide(1.0, -0.0) == -math.inf
    assert math.isnan(divide(0.0, 0.0))


def test_power_edge_cases():
    assert power(10.0, 400.0) == math.inf
    assert power(-10.0, 401.0) == -math.inf
    assert power(0.0, -1.0) == math.inf
    assert power(-0.0, -1.0) == -math.inf
    assert math.isnan(power(-8.0, 1.0 / 3.0))
    assert power(4.0, 0.5) == 2.0


@pytest.mark.parametrize("value,text", [
    (4.0, "4."),
    (362880.0, "362880."),
    (-3.0, "-3."),
    (0.5, "0.5"),
    (1.0 / 3.0, "0.333333333333"),
    (1e20, "1e+20"),
    (math.inf, "infinity"),
    (-math.inf, "neg_infinity"),
    (math.nan, "nan"),
])
def test_format_value(value, text):
    assert format_value(value) == text


def test_power_overflow_accepts_integer_operands():
    assert power(-10, 309) == -math.inf
    assert power(-10, 310) == math.inf
    assert power(0, -3) == math.inf
