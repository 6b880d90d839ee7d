"""Unit tests for the pure Python numerology engine."""
import pytest

from melodie.numerology_engine import (
    MASTER_NUMBERS,
    calculate_all,
    calculate_birthday,
    calculate_expression,
    calculate_life_path,
    calculate_personality,
    calculate_soul_urge,
    describe_life_path,
    reduce_number,
)


# ── reduce_number ────────────────────────────────────────────────────

def test_reduce_zero_is_zero():
    assert reduce_number(0) == 0


def test_reduce_single_digit_unchanged():
    for n in range(1, 10):
        assert reduce_number(n) == n


def test_reduce_master_numbers_preserved():
    assert reduce_number(11) == 11
    assert reduce_number(22) == 22


def test_reduce_33_is_not_a_master_number():
    assert 33 not in MASTER_NUMBERS
    assert reduce_number(33) == 6


def test_reduce_finds_master_in_two_digit():
    assert reduce_number(29) == 11  # 2+9=11 → master
    assert reduce_number(38) == 11  # 3+8=11 → master


def test_reduce_multi_step():
    assert reduce_number(99) == 9   # 9+9=18 → 1+8=9


# ── calculate_life_path ──────────────────────────────────────────────

def test_life_path_sums_every_digit():
    # 1+9+9+0+0+5+1+4 = 29 → 11
    assert calculate_life_path("1990-05-14") == 11


def test_life_path_ignores_separators():
    assert calculate_life_path("1990/05/14") == calculate_life_path("19900514")


def test_life_path_simple():
    # 2+0+0+1+0+1+0+1 = 5
    assert calculate_life_path("2001-01-01") == 5


def test_life_path_empty_date_is_zero():
    assert calculate_life_path("") == 0


@pytest.mark.parametrize(
    "birth_date",
    ["1985-03-29", "1999-12-31", "1970-01-01", "2004-02-29", "1955-11-22"],
)
def test_life_path_in_valid_range(birth_date):
    assert calculate_life_path(birth_date) in {1, 2, 3, 4, 5, 6, 7, 8, 9, 11, 22}


# ── name numbers ─────────────────────────────────────────────────────

def test_expression_ada():
    # A=1, D=4, A=1 → 6
    assert calculate_expression("ADA") == 6


def test_expression_is_case_insensitive():
    assert calculate_expression("Jane Doe") == calculate_expression("JANE DOE")


def test_expression_ignores_non_letters():
    assert calculate_expression("Jane-Doe 3rd!") == calculate_expression("JaneDoerd")


def test_soul_urge_vowels_only():
    # JANE: A=1, E=5 → 6
    assert calculate_soul_urge("JANE") == 6


def test_y_counts_as_vowel():
    # Y=7
    assert calculate_soul_urge("Y") == 7
    assert calculate_personality("Y") == 0


def test_personality_consonants_only():
    # JANE: J=1, N=5 → 6
    assert calculate_personality("JANE") == 6


def test_empty_name_gives_zero():
    assert calculate_expression("") == 0
    assert calculate_soul_urge("") == 0
    assert calculate_personality("") == 0


# ── calculate_birthday ───────────────────────────────────────────────

def test_birthday_reduces_day():
    assert calculate_birthday("1990-05-14") == 5
    assert calculate_birthday("1990-05-29") == 11


def test_birthday_unparseable_is_zero():
    assert calculate_birthday("May 14th") == 0


# ── calculate_all ────────────────────────────────────────────────────

def test_calculate_all_is_deterministic():
    assert calculate_all("Jane Doe", "1990-05-14") == calculate_all("Jane Doe", "1990-05-14")


def test_calculate_all_derived_numbers():
    profile = calculate_all("Jane Doe", "1990-05-14")
    assert profile.life_path == 11
    assert profile.birthday == 5
    assert profile.maturity == reduce_number(profile.life_path + profile.expression)
    assert profile.pinnacles["first"] == reduce_number(11 + 5)
    assert profile.pinnacles["second"] == reduce_number(profile.expression + profile.soul_urge)
    assert profile.challenges["first"] == reduce_number(abs(11 - 5))


def test_calculate_all_camel_case_dump():
    dumped = calculate_all("ADA", "2001-01-01").model_dump(by_alias=True)
    assert dumped["lifePath"] == 5
    assert dumped["expression"] == 6
    assert "soulUrge" in dumped


def test_describe_life_path_has_fallback_text():
    assert describe_life_path(11).startswith("Spiritual")
    assert describe_life_path(0) == "General soul trajectory."
