import unittest
from decimal import Decimal
from unittest.mock import patch

from pokerclub_be.exceptions import (
    AlreadyAppliedError, ConfigurationError, InvalidStateTransitionError, NotEligibleError, NotFoundException
)
from pokerclub_be.models import (
    db, User, Bonus, BonusType, BonusStatus, RoulettePrize, RouletteSpin, PrizeBehavior, PrizeStatus, SpinType
)
from pokerclub_be.services import prize_applier, prize_catalog
from pokerclub_be.services.prize_applier import apply_prize
from pokerclub_be.tests.test_api import BaseTestCase
from pokerclub_be.utils.helpers import utcnow


class TestApplyPrize(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.admin = self._create_admin()
        prize_catalog.reset_default_prizes(self.admin.id)
        self.player = self._create_user()

    def _make_prize(self, position, behavior, value='0.00', config=None, **kwargs):
        prize = RoulettePrize(
            name=kwargs.pop('name', f"Prize {position}"),
            prize_type=kwargs.pop('prize_type', 'special'),
            prize_behavior=behavior,
            prize_value=Decimal(value),
            custom_config=config or {},
            probability=Decimal('0'),
            is_active=False,
            position=position,
            created_by=self.admin.id,
            **kwargs
        )
        db.session.add(prize)
        db.session.commit()
        return prize

    def _make_spin(self, prize, status=PrizeStatus.PENDING_VALIDATION.value, spin_type=SpinType.WELCOME_REAL.value):
        spin = RouletteSpin(
            user_id=self.player.id,
            prize_id=prize.id,
            spin_type=spin_type,
            is_real_prize=spin_type != SpinType.DEMO.value,
            spin_date=utcnow(),
            prize_status=status,
        )
        db.session.add(spin)
        db.session.commit()
        return spin

    def _balance(self):
        return db.session.get(User, self.player.id).balance

    def test_instant_cash_credits_balance(self):
        spin = self._make_spin(self._prize_at(3))
        applied = apply_prize(spin.id, validated_by=self.admin.id)

        self.assertEqual(applied.prize_status, PrizeStatus.APPLIED.value)
        self.assertEqual(applied.validated_by, self.admin.id)
        self.assertIsNotNone(applied.validated_at)
        self.assertEqual(self._balance(), Decimal('10.00'))

    def test_second_application_is_rejected_and_balance_unchanged(self):
        spin = self._make_spin(self._prize_at(3))
        apply_prize(spin.id)
        with self.assertRaises(AlreadyAppliedError):
            apply_prize(spin.id)
        self.assertEqual(self._balance(), Decimal('10.00'))

    def test_lost_status_race_rolls_back_side_effect(self):
        spin = self._make_spin(self._prize_at(3))
        # Another transaction applied the spin after we read it as pending.
        with patch.object(prize_applier, '_check_applicable'):
            db.session.execute(
                RouletteSpin.__table__.update()
                .where(RouletteSpin.id == spin.id)
                .values(prize_status=PrizeStatus.APPLIED.value)
            )
            with self.assertRaises(AlreadyAppliedError):
                apply_prize(spin.id)
        self.assertEqual(self._balance(), Decimal('0.00'))

    def test_demo_spin_has_no_real_prize(self):
        spin = self._make_spin(self._prize_at(3), status=PrizeStatus.DEMO.value, spin_type=SpinType.DEMO.value)
        with self.assertRaises(NotEligibleError):
            apply_prize(spin.id)

    def test_rejected_spin_cannot_be_applied(self):
        spin = self._make_spin(self._prize_at(3), status=PrizeStatus.REJECTED.value)
        with self.assertRaises(InvalidStateTransitionError):
            apply_prize(spin.id)

    def test_missing_spin(self):
        with self.assertRaises(NotFoundException):
            apply_prize(424242)

    def test_bonus_prize_creates_active_bonus(self):
        spin = self._make_spin(self._prize_at(2))
        applied = apply_prize(spin.id, validated_by=self.admin.id)

        bonus = Bonus.query.filter_by(source_spin_id=spin.id).one()
        self.assertEqual(bonus.type, BonusType.DEPOSIT.value)
        self.assertEqual(bonus.status, BonusStatus.ACTIVE.value)
        self.assertEqual(bonus.percentage, Decimal('50.00'))
        self.assertEqual(bonus.max_bonus, Decimal('100.00'))
        self.assertEqual(bonus.min_deposit, Decimal('20.00'))
        self.assertEqual(bonus.assigned_to, self.player.id)
        self.assertEqual(bonus.assigned_by, self.admin.id)
        self.assertIsNotNone(applied.prize_expiry_date)

    def test_bonus_expiry_from_config(self):
        self.app.config['ROULETTE_BONUS_EXPIRY_DAYS'] = 7
        spin = self._make_spin(self._prize_at(2))
        applied = apply_prize(spin.id)
        bonus = Bonus.query.filter_by(source_spin_id=spin.id).one()
        delta = bonus.valid_until - bonus.valid_from
        self.assertEqual(delta.days, 7)
        self.assertEqual(bonus.assigned_by, self.player.id)
        self.assertIsNotNone(applied.prize_expiry_date)

    def test_manual_prize_only_marks_applied(self):
        spin = self._make_spin(self._prize_at(6))
        applied = apply_prize(spin.id, validated_by=self.admin.id)
        self.assertEqual(applied.prize_status, PrizeStatus.APPLIED.value)
        self.assertEqual(self._balance(), Decimal('0.00'))
        self.assertEqual(Bonus.query.filter_by(source_spin_id=spin.id).count(), 0)

    def test_custom_vip_points(self):
        prize = self._make_prize(10, PrizeBehavior.CUSTOM.value, config={'action': 'add_vip_points', 'points': 250})
        apply_prize(self._make_spin(prize).id)
        self.assertEqual(db.session.get(User, self.player.id).vip_points, 250)

    def test_custom_unlock_feature(self):
        prize = self._make_prize(10, PrizeBehavior.CUSTOM.value, config={'action': 'unlock_feature', 'feature': 'vip_table'})
        apply_prize(self._make_spin(prize).id)
        self.assertEqual(db.session.get(User, self.player.id).unlocked_features, ['vip_table'])

    def test_custom_unlock_feature_without_feature_fails_cleanly(self):
        prize = self._make_prize(10, PrizeBehavior.CUSTOM.value, config={'action': 'unlock_feature'})
        spin = self._make_spin(prize)
        with self.assertRaises(ConfigurationError):
            apply_prize(spin.id)
        self.assertEqual(db.session.get(RouletteSpin, spin.id).prize_status, PrizeStatus.PENDING_VALIDATION.value)

    def test_custom_grant_spin(self):
        prize = self._make_prize(10, PrizeBehavior.CUSTOM.value, config={'action': 'grant_spin', 'spins': 2})
        spin = self._make_spin(prize)
        apply_prize(spin.id)
        granted = Bonus.query.filter_by(source_spin_id=spin.id, type=BonusType.ROULETTE_SPIN.value).all()
        self.assertEqual(len(granted), 2)
        self.assertTrue(all(b.status == BonusStatus.ACTIVE.value for b in granted))

    def test_unknown_custom_action_is_a_noop(self):
        prize = self._make_prize(10, PrizeBehavior.CUSTOM.value, config={'action': 'launch_rocket'})
        applied = apply_prize(self._make_spin(prize).id)
        self.assertEqual(applied.prize_status, PrizeStatus.APPLIED.value)

    def test_soft_deleted_prize_is_still_honoured(self):
        prize = self._make_prize(10, PrizeBehavior.INSTANT_CASH.value, value='3.50')
        spin = self._make_spin(prize)
        prize_catalog.delete_prize(prize.id, self.admin.id)

        apply_prize(spin.id)
        self.assertEqual(self._balance(), Decimal('3.50'))

    def test_notification_failure_does_not_undo_application(self):
        spin = self._make_spin(self._prize_at(3))
        with patch('pokerclub_be.services.prize_applier.notification_service.notify_prize_applied',
                   side_effect=RuntimeError('smtp down')):
            applied = apply_prize(spin.id)
        self.assertEqual(applied.prize_status, PrizeStatus.APPLIED.value)
        self.assertEqual(self._balance(), Decimal('10.00'))


if __name__ == '__main__':
    unittest.main()
