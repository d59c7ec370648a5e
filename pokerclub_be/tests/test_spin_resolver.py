import unittest
from decimal import Decimal
from types import SimpleNamespace

from flask import Flask

from pokerclub_be.exceptions import ConfigurationError
from pokerclub_be.services.spin_resolver import (
    FixedRandomSource, SystemRandomSource, cumulative_ranges, draw_prize, get_random_source, resolve_prize,
    simulate_draws
)


def make_prize(prize_id, position, probability):
    return SimpleNamespace(id=prize_id, name=f"Prize {position}", position=position, probability=Decimal(probability))


# Same weights as the default wheel: cumulative bounds 20, 35, 50, 65, 75, 80, 100.
DEFAULT_WEIGHTS = [('20.00', 1), ('15.00', 2), ('15.00', 3), ('15.00', 4), ('10.00', 5), ('5.00', 6), ('20.00', 7)]


class TestResolvePrize(unittest.TestCase):

    def setUp(self):
        self.prizes = [make_prize(pos * 10, pos, prob) for prob, pos in DEFAULT_WEIGHTS]

    def test_draw_just_below_first_bound(self):
        self.assertEqual(resolve_prize(self.prizes, Decimal('19.99')).position, 1)

    def test_draw_just_above_first_bound(self):
        self.assertEqual(resolve_prize(self.prizes, Decimal('20.01')).position, 2)

    def test_bounds_are_half_open(self):
        self.assertEqual(resolve_prize(self.prizes, Decimal('0')).position, 1)
        self.assertEqual(resolve_prize(self.prizes, Decimal('20')).position, 2)
        self.assertEqual(resolve_prize(self.prizes, Decimal('35')).position, 3)
        self.assertEqual(resolve_prize(self.prizes, Decimal('79.99')).position, 6)
        self.assertEqual(resolve_prize(self.prizes, Decimal('99.99')).position, 7)

    def test_input_order_does_not_matter(self):
        shuffled = list(reversed(self.prizes))
        self.assertEqual(resolve_prize(shuffled, Decimal('40')).position, 3)

    def test_rounding_drift_falls_to_last_position(self):
        prizes = [make_prize(1, 1, '33.33'), make_prize(2, 2, '33.33'), make_prize(3, 3, '33.33')]
        self.assertEqual(resolve_prize(prizes, Decimal('99.995')).id, 3)

    def test_zero_probability_prize_never_wins(self):
        prizes = [make_prize(1, 1, '50'), make_prize(2, 2, '0'), make_prize(3, 3, '50')]
        self.assertEqual(resolve_prize(prizes, Decimal('50')).id, 3)

    def test_empty_catalog_raises(self):
        with self.assertRaises(ConfigurationError):
            resolve_prize([], Decimal('10'))

    def test_fixed_draw_is_deterministic(self):
        source = FixedRandomSource('42.5')
        first, r1 = draw_prize(self.prizes, source)
        second, r2 = draw_prize(self.prizes, source)
        self.assertIs(first, second)
        self.assertEqual(r1, r2)
        self.assertEqual(first.position, 3)


class TestRandomSources(unittest.TestCase):

    def test_fixed_source_cycles(self):
        source = FixedRandomSource(1, '2.5', 3)
        self.assertEqual([source.draw() for _ in range(5)],
                         [Decimal('1'), Decimal('2.5'), Decimal('3'), Decimal('1'), Decimal('2.5')])

    def test_fixed_source_needs_values(self):
        with self.assertRaises(ValueError):
            FixedRandomSource()

    def test_system_source_range(self):
        source = SystemRandomSource()
        for _ in range(200):
            r = source.draw()
            self.assertGreaterEqual(r, Decimal('0'))
            self.assertLess(r, Decimal('100'))

    def test_configured_source_is_used(self):
        app = Flask(__name__)
        fixed = FixedRandomSource(5)
        app.config['ROULETTE_RANDOM_SOURCE'] = fixed
        with app.app_context():
            self.assertIs(get_random_source(), fixed)
        app.config['ROULETTE_RANDOM_SOURCE'] = None
        with app.app_context():
            self.assertIsInstance(get_random_source(), SystemRandomSource)


class TestRangesAndSimulation(unittest.TestCase):

    def setUp(self):
        self.prizes = [make_prize(pos, pos, prob) for prob, pos in DEFAULT_WEIGHTS]

    def test_cumulative_ranges(self):
        ranges = cumulative_ranges(self.prizes)
        self.assertEqual([r['upper'] for r in ranges],
                         [Decimal(v) for v in ('20', '35', '50', '65', '75', '80', '100')])
        self.assertEqual(ranges[0]['lower'], Decimal('0'))
        self.assertEqual(ranges[6]['lower'], Decimal('80'))

    def test_simulate_draws_counts_hits(self):
        source = FixedRandomSource('5', '22', '22', '99')
        results = simulate_draws(self.prizes, 4, source)
        hits = {r['position']: r['hits'] for r in results}
        self.assertEqual(hits, {1: 1, 2: 2, 3: 0, 4: 0, 5: 0, 6: 0, 7: 1})
        by_position = {r['position']: r for r in results}
        self.assertEqual(by_position[2]['observed_percentage'], 50.0)
        self.assertEqual(by_position[2]['probability'], 15.0)


if __name__ == '__main__':
    unittest.main()
