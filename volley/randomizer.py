"""Per-request parameter randomization.

Rules use the grammar "<int>-<int>" (inclusive range). Any other string is a
literal that becomes the parameter value for every request.
"""

from __future__ import annotations

import random
import re
import threading
from typing import Any, Mapping, Protocol

from .models import RandomRule

# Signed integers allowed on both sides: "-5-5", "10-20"
RANGE_RULE_PATTERN = re.compile(r"^\s*(-?\d+)\s*-\s*(-?\d+)\s*$")


class RandomSource(Protocol):
    """Anything with randint(a, b) inclusive. random.Random satisfies it."""

    def randint(self, a: int, b: int) -> int: ...


class SynchronizedRandom:
    """Process-wide generator shared by all workers, one draw at a time."""

    __slots__ = ("_rng", "_lock")

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def randint(self, a: int, b: int) -> int:
        with self._lock:
            return self._rng.randint(a, b)


_default_source = SynchronizedRandom()


def default_random_source() -> RandomSource:
    return _default_source


def parse_rule(rule: str) -> RandomRule:
    """Parse a rule string. Never raises: unparsable rules become literals."""
    m = RANGE_RULE_PATTERN.match(rule)
    if m is None:
        return RandomRule(source=rule)
    return RandomRule(source=rule, low=int(m.group(1)), high=int(m.group(2)))


def draw(rule: RandomRule, rng: RandomSource) -> Any:
    """Produce one value for rule. An inverted range (low > high) clamps to low."""
    if not rule.is_range:
        return rule.source
    low, high = rule.low, rule.high
    if low >= high:
        return low
    return rng.randint(low, high)


def build_params(
    static_params: Mapping[str, Any],
    rules: Mapping[str, RandomRule],
    rng: RandomSource,
) -> dict[str, Any]:
    """Merge static params with one fresh draw per rule. Rule keys win."""
    params = dict(static_params)
    for key, rule in rules.items():
        params[key] = draw(rule, rng)
    return params
