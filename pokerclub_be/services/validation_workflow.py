"""
Spin validation workflow.

    demo  ->  pending_validation  ->  applied
                                 \->  rejected

Demo spins never move. Real spins enter pending_validation at creation and
leave it once, to applied (via the prize applier) or to rejected.
Administrators also validate users, which is what grants the real spin.
"""
from flask import current_app
from sqlalchemy import select, update

from pokerclub_be.models import db, User, RouletteSpin, PrizeStatus, SpinType
from pokerclub_be.exceptions import (
    AlreadyAppliedError, InvalidStateTransitionError, NotFoundException, ValidationException
)
from pokerclub_be.services import notification_service
from pokerclub_be.services.prize_applier import apply_prize
from pokerclub_be.utils.helpers import utcnow
from pokerclub_be.utils.security_logger import SecurityLogger

ALLOWED_TRANSITIONS = {
    PrizeStatus.DEMO.value: frozenset(),
    PrizeStatus.PENDING_VALIDATION.value: frozenset({PrizeStatus.APPLIED.value, PrizeStatus.REJECTED.value}),
    PrizeStatus.APPLIED.value: frozenset(),
    PrizeStatus.REJECTED.value: frozenset(),
}

MAX_BATCH_VALIDATION = 100


def assert_transition(current, target):
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        if current == PrizeStatus.APPLIED.value:
            raise AlreadyAppliedError("This prize has already been applied.")
        raise InvalidStateTransitionError(
            f"Cannot move a spin from '{current}' to '{target}'.",
            details={'current_status': current, 'target_status': target}
        )


def _get_spin(spin_id):
    spin = db.session.get(RouletteSpin, spin_id)
    if spin is None:
        raise NotFoundException(f"Spin {spin_id} not found.")
    return spin


def approve_spin(spin_id, admin):
    spin = _get_spin(spin_id)
    assert_transition(spin.prize_status, PrizeStatus.APPLIED.value)
    spin = apply_prize(spin.id, validated_by=admin.id)
    SecurityLogger.log_admin_event('ROULETTE_SPIN_APPROVED', admin.id, spin.user_id, 'approve', {'spin_id': spin.id})
    return spin


def reject_spin(spin_id, admin, notes=None):
    spin = _get_spin(spin_id)
    assert_transition(spin.prize_status, PrizeStatus.REJECTED.value)
    try:
        rejected = db.session.execute(
            update(RouletteSpin)
            .where(RouletteSpin.id == spin.id, RouletteSpin.prize_status == PrizeStatus.PENDING_VALIDATION.value)
            .values(prize_status=PrizeStatus.REJECTED.value, validated_by=admin.id, validated_at=utcnow(), notes=notes)
            .execution_options(synchronize_session=False)
        ).rowcount
        if rejected != 1:
            raise InvalidStateTransitionError("Spin is no longer pending validation.")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(spin)
    SecurityLogger.log_admin_event('ROULETTE_SPIN_REJECTED', admin.id, spin.user_id, 'reject',
                                   {'spin_id': spin.id, 'notes': notes})
    try:
        notification_service.notify_spin_rejected(spin.user, spin, spin.prize)
    except Exception as e:
        current_app.logger.error(f"Rejection notification for spin {spin.id} failed: {str(e)}", exc_info=True)
    return spin


def list_pending_validations():
    """Demo spins of users still waiting to be validated, oldest first."""
    stmt = (
        select(RouletteSpin)
        .join(User, RouletteSpin.user_id == User.id)
        .where(
            RouletteSpin.spin_type == SpinType.DEMO.value,
            RouletteSpin.prize_status == PrizeStatus.DEMO.value,
            User.validated_for_spin.is_(False),
            User.deleted_at.is_(None),
        )
        .order_by(RouletteSpin.created_at.asc(), RouletteSpin.id.asc())
    )
    return db.session.scalars(stmt).all()


def list_pending_spins():
    stmt = (
        select(RouletteSpin)
        .where(RouletteSpin.prize_status == PrizeStatus.PENDING_VALIDATION.value)
        .order_by(RouletteSpin.created_at.asc(), RouletteSpin.id.asc())
    )
    return db.session.scalars(stmt).all()


def _mark_validated(user, admin, now):
    user.validated_for_spin = True
    user.real_spin_available = True
    user.spin_validated_by = admin.id
    user.spin_validated_at = now


def validate_user_for_spin(user_id, admin, notes=None):
    user = db.session.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None)).with_for_update()
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundException(f"User {user_id} not found.")
    if user.validated_for_spin:
        raise InvalidStateTransitionError("User is already validated for the real spin.")

    _mark_validated(user, admin, utcnow())
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    SecurityLogger.log_admin_event('ROULETTE_USER_VALIDATED', admin.id, user.id, 'validate_user', {'notes': notes})
    try:
        notification_service.notify_user_validated(user)
    except Exception as e:
        current_app.logger.error(f"Validation notification for user {user.id} failed: {str(e)}", exc_info=True)
    return user


def validate_users_batch(user_ids, admin):
    """Validate many users at once. Already-validated or unknown ids are reported, not fatal."""
    if not user_ids:
        raise ValidationException("user_ids must not be empty.")
    if len(user_ids) > MAX_BATCH_VALIDATION:
        raise ValidationException(f"At most {MAX_BATCH_VALIDATION} users can be validated per batch.")

    users = db.session.scalars(
        select(User).where(User.id.in_(user_ids), User.deleted_at.is_(None)).with_for_update()
    ).all()
    found = {u.id: u for u in users}
    now = utcnow()
    validated, skipped = [], []
    for user_id in user_ids:
        user = found.get(user_id)
        if user is None or user.validated_for_spin:
            skipped.append(user_id)
            continue
        _mark_validated(user, admin, now)
        validated.append(user)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    SecurityLogger.log_admin_event('ROULETTE_USERS_VALIDATED', admin.id, action='validate_batch',
                                   details={'validated': [u.id for u in validated], 'skipped': skipped})
    for user in validated:
        try:
            notification_service.notify_user_validated(user)
        except Exception as e:
            current_app.logger.error(f"Validation notification for user {user.id} failed: {str(e)}", exc_info=True)
    return validated, skipped
