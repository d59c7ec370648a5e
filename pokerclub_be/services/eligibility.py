"""
Eligibility gate for roulette spins.

`check_and_consume` decides whether a user may spin with a given spin type
and consumes the entitlement in the same transaction. Every consumption is a
guarded UPDATE whose rowcount is checked, so two concurrent requests cannot
both spend the same entitlement even on databases without row locks.
The caller commits.
"""
from collections import namedtuple

from flask import current_app
from sqlalchemy import select, update, func, or_

from pokerclub_be.models import db, User, Bonus, BonusType, BonusStatus, RouletteCode, RouletteSpin, SpinType
from pokerclub_be.exceptions import AlreadyUsedError, NotEligibleError, NotFoundException, ValidationException
from pokerclub_be.utils.helpers import utcnow, ensure_aware
from pokerclub_be.utils.security_logger import SecurityLogger

EligibilityGrant = namedtuple('EligibilityGrant', ['spin_type', 'code', 'bonus_id'])

UserSpinEligibility = namedtuple('UserSpinEligibility', [
    'has_demo_available', 'has_real_available', 'demo_spin_done', 'real_spin_done',
    'is_validated', 'total_spins', 'available_bonus_spins',
])


def _guarded(stmt):
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount


def _lock_user(user_id):
    user = db.session.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None)).with_for_update()
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundException("User not found.")
    return user


def normalize_code(code):
    return (code or '').strip().upper()


def find_usable_code(code_str, user_id):
    """Return the code record if `user_id` could spend it now, else raise NotEligibleError."""
    code_str = normalize_code(code_str)
    if not code_str:
        raise ValidationException("A code is required for a code spin.", details={'code': ['Missing data for required field.']})

    code = db.session.scalar(select(RouletteCode).where(RouletteCode.code == code_str))
    if code is None or code.deleted_at is not None:
        raise NotEligibleError("Invalid code.", details={'reason': 'not_found'})
    if not code.grants_spin:
        raise NotEligibleError("This code does not grant a spin.", details={'reason': 'no_spin'})
    if code.expires_at is not None and ensure_aware(code.expires_at) <= utcnow():
        raise NotEligibleError("This code has expired.", details={'reason': 'expired'})
    if not code.is_active or code.is_exhausted:
        raise NotEligibleError("This code has already been used.", details={'reason': 'used'})

    already = db.session.scalar(
        select(RouletteSpin.id).where(RouletteSpin.user_id == user_id, RouletteSpin.code_used == code_str).limit(1)
    )
    if already is not None:
        raise NotEligibleError("You have already used this code.", details={'reason': 'already_used_by_user'})
    return code


def _oldest_bonus_spin_query(user_id, now):
    return (
        select(Bonus)
        .where(
            Bonus.assigned_to == user_id,
            Bonus.type == BonusType.ROULETTE_SPIN.value,
            Bonus.status == BonusStatus.ACTIVE.value,
            Bonus.deleted_at.is_(None),
            or_(Bonus.valid_until.is_(None), Bonus.valid_until > now),
        )
        .order_by(Bonus.created_at.asc(), Bonus.id.asc())
    )


def _consume_demo(user):
    if user.first_spin_demo_used:
        raise AlreadyUsedError("Demo spin already used.")
    consumed = _guarded(
        update(User)
        .where(User.id == user.id, User.first_spin_demo_used.is_(False))
        .values(first_spin_demo_used=True)
    )
    if consumed != 1:
        SecurityLogger.log_security_event('DUPLICATE_DEMO_SPIN', 'medium', user.id)
        raise AlreadyUsedError("Demo spin already used.")
    return EligibilityGrant(SpinType.DEMO.value, None, None)


def _consume_welcome_real(user):
    if not user.real_spin_available:
        raise NotEligibleError("No real spin available.")
    consumed = _guarded(
        update(User)
        .where(User.id == user.id, User.real_spin_available.is_(True))
        .values(real_spin_available=False)
    )
    if consumed != 1:
        SecurityLogger.log_security_event('DUPLICATE_REAL_SPIN', 'medium', user.id)
        raise NotEligibleError("No real spin available.")
    return EligibilityGrant(SpinType.WELCOME_REAL.value, None, None)


def _consume_code(user, code_str):
    code = find_usable_code(code_str, user.id)
    observed = code.uses_count
    consumed = _guarded(
        update(RouletteCode)
        .where(
            RouletteCode.id == code.id,
            RouletteCode.is_active.is_(True),
            RouletteCode.uses_count == observed,
        )
        .values(
            uses_count=observed + 1,
            used_by=user.id,
            used_at=utcnow(),
            is_active=observed + 1 < code.max_uses,
        )
    )
    if consumed != 1:
        SecurityLogger.log_security_event('CODE_RACE_LOST', 'medium', user.id, {'code': code.code})
        raise NotEligibleError("This code has already been used.", details={'reason': 'used'})
    return EligibilityGrant(SpinType.CODE.value, code.code, None)


def _consume_bonus(user):
    now = utcnow()
    bonus = db.session.scalar(_oldest_bonus_spin_query(user.id, now).limit(1))
    if bonus is None:
        raise NotEligibleError("No bonus spins available.")
    consumed = _guarded(
        update(Bonus)
        .where(Bonus.id == bonus.id, Bonus.status == BonusStatus.ACTIVE.value)
        .values(status=BonusStatus.CLAIMED.value, claimed_at=now)
    )
    if consumed != 1:
        SecurityLogger.log_security_event('BONUS_SPIN_RACE_LOST', 'medium', user.id, {'bonus_id': bonus.id})
        raise NotEligibleError("No bonus spins available.")
    return EligibilityGrant(SpinType.BONUS.value, None, bonus.id)


def check_and_consume(user, spin_type, code=None):
    """Verify and consume the entitlement for `spin_type`. Does not commit."""
    user = _lock_user(user.id)

    if spin_type == SpinType.DEMO.value:
        grant = _consume_demo(user)
    elif spin_type == SpinType.WELCOME_REAL.value:
        grant = _consume_welcome_real(user)
    elif spin_type == SpinType.CODE.value:
        grant = _consume_code(user, code)
    elif spin_type == SpinType.BONUS.value:
        grant = _consume_bonus(user)
    else:
        raise ValidationException(f"Unknown spin type '{spin_type}'.", details={'spin_type': ['Invalid spin type.']})

    db.session.refresh(user)
    current_app.logger.info(f"User {user.id} consumed a {spin_type} spin entitlement.")
    return grant


def get_spin_status(user):
    now = utcnow()
    total_spins = db.session.scalar(
        select(func.count(RouletteSpin.id)).where(RouletteSpin.user_id == user.id)
    ) or 0
    real_spins = db.session.scalar(
        select(func.count(RouletteSpin.id)).where(
            RouletteSpin.user_id == user.id, RouletteSpin.spin_type == SpinType.WELCOME_REAL.value
        )
    ) or 0
    bonus_spins = db.session.scalar(
        select(func.count()).select_from(_oldest_bonus_spin_query(user.id, now).order_by(None).subquery())
    ) or 0
    return UserSpinEligibility(
        has_demo_available=not user.first_spin_demo_used,
        has_real_available=bool(user.real_spin_available),
        demo_spin_done=bool(user.first_spin_demo_used),
        real_spin_done=real_spins > 0,
        is_validated=bool(user.validated_for_spin),
        total_spins=total_spins,
        available_bonus_spins=bonus_spins,
    )
