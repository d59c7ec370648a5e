"""
Prize application.

`apply_prize` moves a real spin from pending_validation to applied and
performs the prize side effect in the same transaction. The status change is
a guarded UPDATE, so a spin is credited at most once no matter how many
approve calls race for it.

Side effects are looked up by prize behavior in `PRIZE_HANDLERS`; `custom`
prizes dispatch again on `custom_config['action']` through `CUSTOM_ACTIONS`.
"""
from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.orm.attributes import flag_modified

from pokerclub_be.models import (
    db, User, Bonus, BonusType, BonusStatus, RoulettePrize, RouletteSpin, PrizeBehavior, PrizeStatus, SpinType
)
from pokerclub_be.exceptions import (
    AlreadyAppliedError, ConfigurationError, InvalidStateTransitionError, NotEligibleError, NotFoundException
)
from pokerclub_be.services import notification_service
from pokerclub_be.utils.helpers import utcnow, to_decimal
from pokerclub_be.utils.security_logger import SecurityLogger

PRIZE_HANDLERS = {}
CUSTOM_ACTIONS = {}


def prize_handler(behavior):
    def decorator(f):
        PRIZE_HANDLERS[behavior.value] = f
        return f
    return decorator


def custom_action(name):
    def decorator(f):
        CUSTOM_ACTIONS[name] = f
        return f
    return decorator


class ApplyContext:
    """What a handler needs: the locked user, the spin, the live prize, who validated and when."""

    def __init__(self, spin, prize, user, validated_by, now):
        self.spin = spin
        self.prize = prize
        self.user = user
        self.validated_by = validated_by
        self.now = now
        self.expiry_date = None


# --- Behavior handlers ---

@prize_handler(PrizeBehavior.INSTANT_CASH)
def _apply_instant_cash(ctx):
    amount = to_decimal(ctx.prize.prize_value)
    balance_before = Decimal(ctx.user.balance)
    db.session.execute(
        update(User)
        .where(User.id == ctx.user.id)
        .values(balance=User.balance + amount)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(ctx.user)
    SecurityLogger.log_financial_event(
        'ROULETTE_INSTANT_CASH', ctx.user.id, amount=str(amount),
        balance_before=str(balance_before), balance_after=str(ctx.user.balance),
        reference=f"roulette_spin:{ctx.spin.id}"
    )
    return {'credited': str(amount)}


@prize_handler(PrizeBehavior.BONUS)
def _apply_bonus(ctx):
    cfg = ctx.prize.config
    expiry_days = int(cfg.get('expiry_days') or current_app.config.get('ROULETTE_BONUS_EXPIRY_DAYS', 30))
    ctx.expiry_date = ctx.now + timedelta(days=expiry_days)
    percentage = cfg.get('bonus_percentage', cfg.get('percentage'))
    max_bonus = cfg.get('max_bonus', ctx.prize.prize_value)

    bonus = Bonus(
        name=f"Roulette bonus: {ctx.prize.name}",
        description=ctx.prize.description or 'Bonus won on the roulette',
        type=cfg.get('bonus_type', BonusType.DEPOSIT.value),
        amount=to_decimal(cfg.get('amount')),
        percentage=to_decimal(percentage) if percentage is not None else None,
        max_bonus=to_decimal(max_bonus) if max_bonus is not None else None,
        min_deposit=to_decimal(cfg.get('min_deposit', ctx.prize.min_deposit_required)),
        assigned_to=ctx.user.id,
        assigned_by=ctx.validated_by or ctx.user.id,
        status=BonusStatus.ACTIVE.value,
        valid_from=ctx.now,
        valid_until=ctx.expiry_date,
        source_spin_id=ctx.spin.id,
    )
    db.session.add(bonus)
    db.session.flush()
    SecurityLogger.log_financial_event(
        'ROULETTE_BONUS_GRANTED', ctx.user.id, amount=str(bonus.amount),
        reference=f"roulette_spin:{ctx.spin.id}", details={'bonus_id': bonus.id, 'type': bonus.type}
    )
    return {'bonus_id': bonus.id}


@prize_handler(PrizeBehavior.MANUAL)
def _apply_manual(ctx):
    # Physical or out-of-band prizes: staff fulfil them, the spin only records the win.
    current_app.logger.info(
        f"Manual prize '{ctx.prize.name}' ({ctx.prize.prize_type}) recorded for user {ctx.user.id}, spin {ctx.spin.id}."
    )
    return {'manual': True}


@prize_handler(PrizeBehavior.CUSTOM)
def _apply_custom(ctx):
    action = ctx.prize.config.get('action')
    handler = CUSTOM_ACTIONS.get(action)
    if handler is None:
        current_app.logger.warning(f"Custom prize {ctx.prize.id} has unknown action '{action}'; nothing to apply.")
        return {'action': action, 'applied': False}
    result = handler(ctx)
    result.setdefault('action', action)
    return result


# --- Custom actions ---

@custom_action('add_vip_points')
def _add_vip_points(ctx):
    points = int(ctx.prize.config.get('points', 0))
    db.session.execute(
        update(User)
        .where(User.id == ctx.user.id)
        .values(vip_points=User.vip_points + points)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(ctx.user)
    return {'vip_points_added': points}


@custom_action('unlock_feature')
def _unlock_feature(ctx):
    feature = ctx.prize.config.get('feature')
    if not feature:
        raise ConfigurationError(f"Custom prize {ctx.prize.id} has no feature to unlock.")
    features = list(ctx.user.unlocked_features or [])
    if feature not in features:
        features.append(feature)
        ctx.user.unlocked_features = features
        flag_modified(ctx.user, 'unlocked_features')
    return {'feature': feature}


@custom_action('grant_spin')
def _grant_spin(ctx):
    cfg = ctx.prize.config
    spins = int(cfg.get('spins', 1))
    expiry_days = int(cfg.get('expiry_days') or current_app.config.get('ROULETTE_BONUS_EXPIRY_DAYS', 30))
    for _ in range(spins):
        db.session.add(Bonus(
            name=f"Roulette extra spin: {ctx.prize.name}",
            description='Extra roulette spin',
            type=BonusType.ROULETTE_SPIN.value,
            assigned_to=ctx.user.id,
            assigned_by=ctx.validated_by or ctx.user.id,
            status=BonusStatus.ACTIVE.value,
            valid_from=ctx.now,
            valid_until=ctx.now + timedelta(days=expiry_days),
            source_spin_id=ctx.spin.id,
        ))
    return {'spins_granted': spins}


# --- Entry point ---

def _check_applicable(spin):
    if spin.spin_type == SpinType.DEMO.value or spin.prize_status == PrizeStatus.DEMO.value or not spin.is_real_prize:
        raise NotEligibleError("Demo spins carry no real prize.")
    if spin.prize_status == PrizeStatus.APPLIED.value:
        SecurityLogger.log_security_event('DUPLICATE_PRIZE_APPLICATION', 'medium', spin.user_id, {'spin_id': spin.id})
        raise AlreadyAppliedError("This prize has already been applied.")
    if spin.prize_status == PrizeStatus.REJECTED.value:
        raise InvalidStateTransitionError("A rejected spin cannot be applied.")


def apply_prize(spin_id, validated_by=None):
    """Credit the prize of a pending real spin and mark it applied. Commits."""
    spin = db.session.execute(
        select(RouletteSpin).where(RouletteSpin.id == spin_id).with_for_update()
    ).scalar_one_or_none()
    if spin is None:
        raise NotFoundException(f"Spin {spin_id} not found.")
    _check_applicable(spin)

    # Read live, soft-deleted or inactive definitions included.
    prize = db.session.get(RoulettePrize, spin.prize_id)
    user = db.session.execute(select(User).where(User.id == spin.user_id).with_for_update()).scalar_one()
    handler = PRIZE_HANDLERS.get(prize.prize_behavior)
    if handler is None:
        raise ConfigurationError(f"Prize {prize.id} has unknown behavior '{prize.prize_behavior}'.")

    now = utcnow()
    ctx = ApplyContext(spin, prize, user, validated_by, now)
    try:
        transitioned = db.session.execute(
            update(RouletteSpin)
            .where(RouletteSpin.id == spin.id, RouletteSpin.prize_status == PrizeStatus.PENDING_VALIDATION.value)
            .values(prize_status=PrizeStatus.APPLIED.value, validated_by=validated_by, validated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if transitioned != 1:
            SecurityLogger.log_security_event('DUPLICATE_PRIZE_APPLICATION', 'medium', spin.user_id, {'spin_id': spin.id})
            raise AlreadyAppliedError("This prize has already been applied.")

        result = handler(ctx)
        if ctx.expiry_date is not None:
            db.session.execute(
                update(RouletteSpin)
                .where(RouletteSpin.id == spin.id)
                .values(prize_expiry_date=ctx.expiry_date)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(spin)
    SecurityLogger.log_game_event(
        'PRIZE_APPLIED', spin.user_id, spin_type=spin.spin_type, spin_id=spin.id, prize_id=prize.id,
        details={'behavior': prize.prize_behavior, 'result': result, 'validated_by': validated_by}
    )
    try:
        notification_service.notify_prize_applied(user, spin, prize)
    except Exception as e:
        current_app.logger.error(f"Prize notification for spin {spin.id} failed: {str(e)}", exc_info=True)
    return spin
