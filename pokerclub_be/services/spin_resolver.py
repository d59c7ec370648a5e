"""
Weighted prize draw.

The wheel is walked in position order, accumulating probability mass; the
first prize whose cumulative upper bound exceeds the draw wins. The draw
comes from an injected `RandomSource`, so a fixed draw against a fixed
catalog snapshot always yields the same prize.
"""
import secrets
from collections import Counter
from decimal import Decimal

from flask import current_app

from pokerclub_be.exceptions import ConfigurationError

HUNDRED = Decimal('100')


class RandomSource:
    """Produces draws uniformly distributed in [0, 100)."""

    def draw(self) -> Decimal:
        raise NotImplementedError


class SystemRandomSource(RandomSource):
    def __init__(self):
        self._rng = secrets.SystemRandom()

    def draw(self) -> Decimal:
        return Decimal(self._rng.random()) * HUNDRED


class FixedRandomSource(RandomSource):
    """Replays the given draws in order, cycling when exhausted."""

    def __init__(self, *values):
        if not values:
            raise ValueError("FixedRandomSource needs at least one value")
        self._values = [Decimal(str(v)) for v in values]
        self._index = 0

    def draw(self) -> Decimal:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value


def get_random_source() -> RandomSource:
    configured = current_app.config.get('ROULETTE_RANDOM_SOURCE')
    return configured if configured is not None else SystemRandomSource()


def _ordered(prizes):
    return sorted(prizes, key=lambda p: p.position)


def resolve_prize(prizes, r):
    """Return the prize whose cumulative range [lower, upper) contains r."""
    ordered = _ordered(prizes)
    if not ordered:
        raise ConfigurationError("No prizes are configured on the roulette. Configure prizes before spinning.")

    r = Decimal(r)
    cumulative = Decimal('0')
    for prize in ordered:
        cumulative += Decimal(prize.probability)
        if r < cumulative:
            return prize
    # Rounding drift below 100: the highest position absorbs the remainder.
    return ordered[-1]


def draw_prize(prizes, random_source: RandomSource):
    r = random_source.draw()
    return resolve_prize(prizes, r), r


def cumulative_ranges(prizes):
    ranges = []
    lower = Decimal('0')
    for prize in _ordered(prizes):
        upper = lower + Decimal(prize.probability)
        ranges.append({'prize_id': prize.id, 'position': prize.position, 'lower': lower, 'upper': upper})
        lower = upper
    return ranges


def simulate_draws(prizes, count: int, random_source: RandomSource):
    """Run `count` draws and compare observed frequency to configured probability."""
    ordered = _ordered(prizes)
    hits = Counter(resolve_prize(ordered, random_source.draw()).id for _ in range(count))
    return [
        {
            'prize_id': prize.id,
            'name': prize.name,
            'position': prize.position,
            'probability': float(prize.probability),
            'hits': hits.get(prize.id, 0),
            'observed_percentage': round(hits.get(prize.id, 0) * 100.0 / count, 2) if count else 0.0,
        }
        for prize in ordered
    ]
