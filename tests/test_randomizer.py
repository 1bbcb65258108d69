"""Unit tests for rule parsing and per-request parameter randomization."""

from __future__ import annotations

import random
import threading

import pytest

from volley.models import RandomRule
from volley.randomizer import SynchronizedRandom, build_params, default_random_source, draw, parse_rule


@pytest.mark.parametrize(
    ("rule", "low", "high"),
    [("1-1000", 1, 1000), ("0-0", 0, 0), (" 5 - 10 ", 5, 10), ("-5-5", -5, 5), ("-10--2", -10, -2)],
)
def test_parse_rule_range(rule: str, low: int, high: int) -> None:
    r = parse_rule(rule)
    assert r.is_range
    assert (r.low, r.high) == (low, high)
    assert r.source == rule


@pytest.mark.parametrize("rule", ["foo", "", "5", "1-", "-7", "1-100abc", "a-b", "1.5-2"])
def test_parse_rule_literal_fallback(rule: str) -> None:
    r = parse_rule(rule)
    assert not r.is_range
    assert r.source == rule


def test_draw_range_bounds_over_many_samples(seeded_rng: random.Random) -> None:
    rule = parse_rule("1-1000")
    values = [draw(rule, seeded_rng) for _ in range(5000)]
    assert all(isinstance(v, int) for v in values)
    assert all(1 <= v <= 1000 for v in values)
    # Near-uniform: both tails and the middle are hit
    assert min(values) <= 10
    assert max(values) >= 990
    assert 400 <= sum(values) / len(values) <= 600


def test_draw_literal_is_exact_string(seeded_rng: random.Random) -> None:
    rule = parse_rule("foo")
    assert {draw(rule, seeded_rng) for _ in range(100)} == {"foo"}


def test_draw_inverted_range_clamps_to_low(seeded_rng: random.Random) -> None:
    rule = parse_rule("10-5")
    assert rule.is_range
    assert {draw(rule, seeded_rng) for _ in range(50)} == {10}


def test_draw_single_value_range() -> None:
    class _Boom:
        def randint(self, a: int, b: int) -> int:
            raise AssertionError("not expected for a one-value range")

    assert draw(RandomRule(source="7-7", low=7, high=7), _Boom()) == 7


def test_build_params_rule_overrides_static(seeded_rng: random.Random) -> None:
    rules = {"id": parse_rule("1-3"), "tag": parse_rule("blue")}
    static = {"id": "static", "name": "x"}
    params = build_params(static, rules, seeded_rng)
    assert params["name"] == "x"
    assert params["tag"] == "blue"
    assert params["id"] in (1, 2, 3)
    assert static == {"id": "static", "name": "x"}


def test_build_params_deterministic_with_seed() -> None:
    rules = {"id": parse_rule("1-1000000")}
    a = [build_params({}, rules, random.Random(7))["id"] for _ in range(3)]
    b = [build_params({}, rules, random.Random(7))["id"] for _ in range(3)]
    assert a == b


def test_synchronized_random_concurrent_use() -> None:
    rng = SynchronizedRandom(seed=1)
    out: list[int] = []
    lock = threading.Lock()

    def _draw() -> None:
        local = [rng.randint(1, 100) for _ in range(1000)]
        with lock:
            out.extend(local)

    threads = [threading.Thread(target=_draw) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(out) == 8000
    assert all(1 <= v <= 100 for v in out)


def test_default_random_source_is_shared() -> None:
    assert default_random_source() is default_random_source()
    assert 1 <= default_random_source().randint(1, 2) <= 2
