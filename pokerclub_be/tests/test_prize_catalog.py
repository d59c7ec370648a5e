import unittest
from decimal import Decimal

from pokerclub_be.exceptions import ConfigurationError, ConflictError, NotFoundException, ValidationException
from pokerclub_be.models import db, RoulettePrize, PrizeBehavior
from pokerclub_be.services import prize_catalog
from pokerclub_be.tests.test_api import BaseTestCase


class TestProbabilityCheck(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.admin = self._create_admin()

    def test_default_catalog_sums_to_100(self):
        prizes = prize_catalog.reset_default_prizes(self.admin.id)
        check = prize_catalog.validate_probability_sum(prizes)
        self.assertTrue(check.valid)
        self.assertEqual(check.total, Decimal('100'))
        self.assertEqual(check.missing, Decimal('0'))
        self.assertEqual([p.position for p in prizes], [1, 2, 3, 4, 5, 6, 7])

    def test_empty_catalog_is_invalid(self):
        check = prize_catalog.validate_probability_sum()
        self.assertFalse(check.valid)
        self.assertEqual(check.missing, Decimal('100'))
        with self.assertRaises(ConfigurationError):
            prize_catalog.ensure_valid_catalog()

    def test_inactive_prizes_do_not_count(self):
        prize_catalog.reset_default_prizes(self.admin.id)
        prize_catalog.create_prize(
            {'name': 'Spare', 'prize_type': 'chips', 'probability': '30', 'position': 9, 'is_active': False},
            self.admin.id
        )
        self.assertTrue(prize_catalog.validate_probability_sum().valid)

    def test_inactive_prizes_can_be_drafted_on_empty_catalog(self):
        draft = prize_catalog.create_prize(
            {'name': 'Draft', 'prize_type': 'chips', 'probability': '20', 'position': 1, 'is_active': False},
            self.admin.id
        )
        prize_catalog.update_prize(draft.id, {'probability': '100'}, self.admin.id)
        clone = prize_catalog.clone_prize(draft.id, self.admin.id)
        prize_catalog.delete_prize(clone.id, self.admin.id)
        self.assertEqual([(p.position, p.probability) for p in prize_catalog.list_prizes()], [(1, Decimal('100.00'))])

        prize_catalog.toggle_prizes_status([draft.id], True, self.admin.id)
        self.assertTrue(prize_catalog.validate_probability_sum().valid)

    def test_activating_draft_that_breaks_sum_is_rejected(self):
        draft = prize_catalog.create_prize(
            {'name': 'Draft', 'prize_type': 'chips', 'probability': '20', 'position': 1, 'is_active': False},
            self.admin.id
        )
        with self.assertRaises(ConfigurationError):
            prize_catalog.toggle_prizes_status([draft.id], True, self.admin.id)
        self.assertFalse(db.session.get(RoulettePrize, draft.id).is_active)

    def test_tolerance_is_strict(self):
        prizes = [RoulettePrize(probability=Decimal('99.99'), is_active=True)]
        self.assertFalse(prize_catalog.validate_probability_sum(prizes).valid)
        prizes = [RoulettePrize(probability=Decimal('99.995'), is_active=True)]
        self.assertTrue(prize_catalog.validate_probability_sum(prizes).valid)


class TestCatalogMutations(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.admin = self._create_admin()
        prize_catalog.reset_default_prizes(self.admin.id)

    def _snapshot(self):
        return [(p.position, p.probability, p.is_active) for p in prize_catalog.list_prizes()]

    def test_probabilities_summing_to_95_are_rejected_and_catalog_kept(self):
        before = self._snapshot()
        last = self._prize_at(7)
        with self.assertRaises(ConfigurationError):
            prize_catalog.adjust_probabilities([{'prize_id': last.id, 'probability': Decimal('15')}], self.admin.id)
        self.assertEqual(self._snapshot(), before)

    def test_adjust_probabilities_rebalances(self):
        first, last = self._prize_at(1), self._prize_at(7)
        prize_catalog.adjust_probabilities([
            {'prize_id': first.id, 'probability': Decimal('30')},
            {'prize_id': last.id, 'probability': Decimal('10')},
        ], self.admin.id)
        self.assertEqual(self._prize_at(1).probability, Decimal('30.00'))
        self.assertTrue(prize_catalog.validate_probability_sum().valid)

    def test_position_conflict(self):
        with self.assertRaises(ConflictError):
            prize_catalog.create_prize(
                {'name': 'Dup', 'prize_type': 'chips', 'probability': '0', 'position': 1, 'is_active': False},
                self.admin.id
            )

    def test_position_out_of_range(self):
        with self.assertRaises(ValidationException):
            prize_catalog.check_position_available(21)
        with self.assertRaises(ValidationException):
            prize_catalog.check_position_available(None)

    def test_update_prize_keeps_invariant(self):
        prize = self._prize_at(3)
        with self.assertRaises(ConfigurationError):
            prize_catalog.update_prize(prize.id, {'probability': '25'}, self.admin.id)
        db.session.refresh(prize)
        self.assertEqual(prize.probability, Decimal('15.00'))

        updated = prize_catalog.update_prize(prize.id, {'name': '$15 Cash Game', 'prize_value': '15'}, self.admin.id)
        self.assertEqual(updated.prize_value, Decimal('15.00'))

    def test_update_to_taken_position_conflicts(self):
        with self.assertRaises(ConflictError):
            prize_catalog.update_prize(self._prize_at(3).id, {'position': 4}, self.admin.id)

    def test_soft_delete_frees_position(self):
        spare = prize_catalog.create_prize(
            {'name': 'Spare', 'prize_type': 'chips', 'probability': '0', 'position': 8, 'is_active': False},
            self.admin.id
        )
        prize_catalog.delete_prize(spare.id, self.admin.id)

        deleted = db.session.get(RoulettePrize, spare.id)
        self.assertIsNotNone(deleted.deleted_at)
        self.assertIsNone(deleted.position)
        with self.assertRaises(NotFoundException):
            prize_catalog.get_prize(spare.id)
        self.assertIs(prize_catalog.get_prize(spare.id, include_deleted=True), deleted)

        # Slot 8 is reusable.
        prize_catalog.check_position_available(8)

    def test_deleting_active_prize_breaks_sum(self):
        with self.assertRaises(ConfigurationError):
            prize_catalog.delete_prize(self._prize_at(1).id, self.admin.id)
        self.assertIsNone(self._prize_at(1).deleted_at)

    def test_reorder_swaps_positions(self):
        a, b = self._prize_at(1), self._prize_at(2)
        a_id, b_id = a.id, b.id
        prize_catalog.reorder_prizes([
            {'prize_id': a_id, 'position': 2},
            {'prize_id': b_id, 'position': 1},
        ], self.admin.id)
        self.assertEqual(self._prize_at(1).id, b_id)
        self.assertEqual(self._prize_at(2).id, a_id)

    def test_reorder_rejects_duplicate_targets(self):
        a, b = self._prize_at(1), self._prize_at(2)
        with self.assertRaises(ConflictError):
            prize_catalog.reorder_prizes([
                {'prize_id': a.id, 'position': 9},
                {'prize_id': b.id, 'position': 9},
            ], self.admin.id)

    def test_clone_is_inactive_in_first_free_slot(self):
        source = self._prize_at(2)
        clone = prize_catalog.clone_prize(source.id, self.admin.id)
        self.assertFalse(clone.is_active)
        self.assertEqual(clone.position, 8)
        self.assertEqual(clone.prize_behavior, PrizeBehavior.BONUS.value)
        self.assertEqual(clone.custom_config, source.custom_config)
        self.assertTrue(prize_catalog.validate_probability_sum().valid)

    def test_swap_active_prize_in_one_change(self):
        spare = prize_catalog.create_prize(
            {'name': 'Spare', 'prize_type': 'chips', 'probability': '20', 'position': 8, 'is_active': False},
            self.admin.id
        )
        last = self._prize_at(7)
        with self.assertRaises(ConfigurationError):
            prize_catalog.toggle_prizes_status([spare.id], True, self.admin.id)

        prize_catalog.bulk_update_prizes([
            {'prize_id': last.id, 'is_active': False},
            {'prize_id': spare.id, 'is_active': True},
        ], self.admin.id)
        self.assertEqual([p.position for p in prize_catalog.list_active_prizes()], [1, 2, 3, 4, 5, 6, 8])

    def test_export_import_round_trip(self):
        exported = prize_catalog.export_configuration()
        self.assertEqual(exported['version'], 1)
        self.assertEqual(exported['prizes'][0]['probability'], '20.00')

        prizes = prize_catalog.import_configuration(exported, self.admin.id)
        self.assertEqual(len(prizes), 7)
        self.assertEqual(RoulettePrize.query.filter(RoulettePrize.deleted_at.isnot(None)).count(), 7)

    def test_import_invalid_catalog_keeps_previous(self):
        before = self._snapshot()
        with self.assertRaises(ConfigurationError):
            prize_catalog.import_configuration({'prizes': [
                {'name': 'Only', 'prize_type': 'chips', 'probability': Decimal('50'), 'position': 1, 'is_active': True},
            ]}, self.admin.id)
        self.assertEqual(self._snapshot(), before)

    def test_import_empty_payload(self):
        with self.assertRaises(ValidationException):
            prize_catalog.import_configuration({'prizes': []}, self.admin.id)


if __name__ == '__main__':
    unittest.main()
