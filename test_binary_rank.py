"""
Tests for the activation rule and the rank resolver
"""

import itertools

import pytest

from services.binary_matching import check_binary_activation
from services.binary_rank import (
    BINARY_RANKS, resolve_rank, get_next_rank_info, calculate_weaker_leg_pv
)


@pytest.mark.parametrize('left, right, expected', [
    (1, 2, True),
    (2, 1, True),
    (1, 1, False),
    (0, 5, False),
    (5, 0, False),
    (2, 2, True),
    (0, 0, False),
])
def test_activation_rule(left, right, expected):
    assert check_binary_activation(left, right)['activated'] is expected


def test_activation_message():
    assert check_binary_activation(1, 2)['message'] == 'Binary activated! Left: 1, Right: 2'
    assert check_binary_activation(1, 1)['message'] == 'Need 1:2 ratio. Current - Left: 1, Right: 1'


def test_activation_is_monotonic():
    counts = range(0, 6)
    for left, right in itertools.product(counts, counts):
        if not check_binary_activation(left, right)['activated']:
            continue
        for more_left, more_right in itertools.product(range(left, 7), range(right, 7)):
            assert check_binary_activation(more_left, more_right)['activated'], \
                f"({more_left}, {more_right}) should stay activated after ({left}, {right})"


def test_rank_boundaries():
    assert (resolve_rank(0)['name'], resolve_rank(0)['bonus_percent']) == ('NONE', 0)
    assert (resolve_rank(2)['name'], resolve_rank(2)['bonus_percent']) == ('NONE', 0)
    assert (resolve_rank(3)['name'], resolve_rank(3)['bonus_percent']) == ('IGNITOR', 10)
    assert (resolve_rank(499)['name'], resolve_rank(499)['bonus_percent']) == ('INNOVATOR', 10)
    assert (resolve_rank(500)['name'], resolve_rank(500)['bonus_percent']) == ('TRAILBLAZER', 15)
    assert (resolve_rank(11110)['name'], resolve_rank(11110)['bonus_percent']) == ('VANGUARD', 15)
    assert (resolve_rank(44444)['name'], resolve_rank(44444)['bonus_percent']) == ('ZENITH', 20)
    assert resolve_rank(10 ** 9)['name'] == 'ZENITH'


def test_rank_just_below_top_tier():
    rank = resolve_rank(44443)
    assert rank['name'] == 'SOVEREIGN'
    assert rank['name'] != 'ZENITH'


def test_every_threshold_resolves_to_its_own_tier():
    for tier in BINARY_RANKS:
        assert resolve_rank(tier['min_affiliates']) == tier


def test_rank_is_monotonic():
    thresholds = sorted({t['min_affiliates'] + delta for t in BINARY_RANKS for delta in (-1, 0, 1)})
    percents = [resolve_rank(n)['bonus_percent'] for n in thresholds]
    assert percents == sorted(percents)


def test_missing_or_negative_affiliates_resolve_to_none():
    assert resolve_rank(None)['name'] == 'NONE'
    assert resolve_rank(-7)['name'] == 'NONE'


def test_resolve_rank_returns_a_copy():
    rank = resolve_rank(3)
    rank['bonus_percent'] = 99
    assert resolve_rank(3)['bonus_percent'] == 10


def test_next_rank_info():
    info = get_next_rank_info(10)
    assert info['is_max_rank'] is False
    assert info['current_rank'] == 'IGNITOR'
    assert info['next_rank'] == 'SPARK'
    assert info['affiliates_needed'] == 2
    assert info['message'] == '2 more active affiliates to reach SPARK'


def test_next_rank_info_at_max_rank():
    info = get_next_rank_info(50000)
    assert info['is_max_rank'] is True
    assert info['current_rank'] == 'ZENITH'
    assert 'next_rank' not in info


def test_weaker_leg():
    assert calculate_weaker_leg_pv(200, 60) == 60
    assert calculate_weaker_leg_pv(0, 94.5) == 0
