"""
Roulette spin orchestration plus code management and statistics.
"""
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import select, func, and_, or_, true

from pokerclub_be.models import db, User, RouletteCode, RoulettePrize, RouletteSpin, SpinType, PrizeStatus
from pokerclub_be.exceptions import AppException, NotFoundException, ValidationException
from pokerclub_be.services import eligibility, prize_catalog
from pokerclub_be.services.prize_applier import apply_prize
from pokerclub_be.services.spin_resolver import draw_prize, get_random_source
from pokerclub_be.utils.helpers import utcnow, paginate_params
from pokerclub_be.utils.security_logger import SecurityLogger

IMMEDIATE_APPLY_TYPES = (SpinType.CODE.value, SpinType.BONUS.value)
MAX_CODES_PER_REQUEST = 100
CODE_STATUSES = ('all', 'active', 'used', 'expired')


def spin(user_id, spin_type, code=None, random_source=None):
    """
    Run one spin for `user_id`.

    Eligibility consumption and the spin record commit together. Code and
    bonus spins are then applied straight away in a separate transaction; if
    that fails the spin stays pending_validation for an administrator.
    Returns (spin, prize).
    """
    user = db.session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        raise NotFoundException("User not found.")
    random_source = random_source or get_random_source()

    try:
        grant = eligibility.check_and_consume(user, spin_type, code)
        prizes = prize_catalog.list_active_prizes()
        prize_catalog.ensure_valid_catalog(prizes)
        prize, r = draw_prize(prizes, random_source)

        is_real = spin_type != SpinType.DEMO.value
        record = RouletteSpin(
            user_id=user.id,
            prize_id=prize.id,
            spin_type=spin_type,
            is_real_prize=is_real,
            code_used=grant.code,
            spin_date=utcnow(),
            prize_status=PrizeStatus.PENDING_VALIDATION.value if is_real else PrizeStatus.DEMO.value,
        )
        db.session.add(record)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    SecurityLogger.log_game_event(
        'ROULETTE_SPIN', user.id, spin_type=spin_type, spin_id=record.id, prize_id=prize.id,
        details={'draw': str(r), 'code': grant.code, 'bonus_id': grant.bonus_id}
    )

    if spin_type in IMMEDIATE_APPLY_TYPES:
        try:
            record = apply_prize(record.id)
        except AppException as e:
            current_app.logger.error(
                f"Immediate prize application for spin {record.id} failed ({e.error_code}): {e.status_message}. "
                f"Left pending for validation."
            )
        except Exception as e:
            current_app.logger.error(
                f"Immediate prize application for spin {record.id} failed: {str(e)}. Left pending for validation.",
                exc_info=True
            )
        db.session.refresh(record)
    return record, prize


def get_spin_history(user_id, page=1, per_page=10):
    page, per_page = paginate_params(page, per_page)
    return db.paginate(
        select(RouletteSpin).where(RouletteSpin.user_id == user_id)
        .order_by(RouletteSpin.spin_date.desc(), RouletteSpin.id.desc()),
        page=page, per_page=per_page, error_out=False
    )


def check_code(code_str, user):
    """Report whether `user` could spin with `code_str` right now, without consuming it."""
    return eligibility.find_usable_code(code_str, user.id)


# --- Codes ---

def _generate_code():
    return secrets.token_hex(4).upper()


def create_codes(creator, quantity=1, expires_in_days=None, description=None, max_uses=1):
    if not 1 <= quantity <= MAX_CODES_PER_REQUEST:
        raise ValidationException(f"Quantity must be between 1 and {MAX_CODES_PER_REQUEST}.")
    if expires_in_days is not None and not 1 <= expires_in_days <= 365:
        raise ValidationException("expires_in_days must be between 1 and 365.")
    if max_uses < 1:
        raise ValidationException("max_uses must be at least 1.")

    expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days else None
    existing = set(db.session.scalars(select(RouletteCode.code)).all())
    codes = []
    while len(codes) < quantity:
        value = _generate_code()
        if value in existing:
            continue
        existing.add(value)
        codes.append(RouletteCode(
            code=value,
            grants_spin=True,
            description=description,
            created_by=creator.id,
            expires_at=expires_at,
            max_uses=max_uses,
        ))
    db.session.add_all(codes)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    SecurityLogger.log_admin_event('ROULETTE_CODES_CREATED', creator.id, action='create_codes',
                                   details={'quantity': quantity, 'expires_in_days': expires_in_days})
    return codes


def list_codes(viewer, status='all', page=1, per_page=20):
    if status not in CODE_STATUSES:
        raise ValidationException(f"status must be one of {', '.join(CODE_STATUSES)}.")
    page, per_page = paginate_params(page, per_page, max_per_page=100)
    now = utcnow()
    stmt = select(RouletteCode).where(RouletteCode.deleted_at.is_(None))
    if not viewer.is_admin:
        stmt = stmt.where(RouletteCode.created_by == viewer.id)

    not_expired = or_(RouletteCode.expires_at.is_(None), RouletteCode.expires_at > now)
    if status == 'active':
        stmt = stmt.where(RouletteCode.is_active.is_(True), RouletteCode.uses_count < RouletteCode.max_uses, not_expired)
    elif status == 'used':
        stmt = stmt.where(RouletteCode.uses_count > 0)
    elif status == 'expired':
        stmt = stmt.where(RouletteCode.expires_at.is_not(None), RouletteCode.expires_at <= now)

    return db.paginate(stmt.order_by(RouletteCode.created_at.desc(), RouletteCode.id.desc()),
                       page=page, per_page=per_page, error_out=False)


# --- Statistics ---

def get_stats(start=None, end=None):
    conditions = []
    if start is not None:
        conditions.append(RouletteSpin.spin_date >= start)
    if end is not None:
        conditions.append(RouletteSpin.spin_date <= end)
    where = and_(*conditions) if conditions else true()

    by_type = dict(db.session.execute(
        select(RouletteSpin.spin_type, func.count(RouletteSpin.id)).where(where).group_by(RouletteSpin.spin_type)
    ).all())
    by_status = dict(db.session.execute(
        select(RouletteSpin.prize_status, func.count(RouletteSpin.id)).where(where).group_by(RouletteSpin.prize_status)
    ).all())
    distribution = db.session.execute(
        select(RoulettePrize.id, RoulettePrize.name, func.count(RouletteSpin.id))
        .join(RouletteSpin, RouletteSpin.prize_id == RoulettePrize.id)
        .where(where)
        .group_by(RoulettePrize.id, RoulettePrize.name)
        .order_by(func.count(RouletteSpin.id).desc())
    ).all()
    codes_used = db.session.scalar(
        select(func.count(RouletteSpin.id)).where(where, RouletteSpin.code_used.is_not(None))
    ) or 0
    codes_active = db.session.scalar(
        select(func.count(RouletteCode.id)).where(
            RouletteCode.deleted_at.is_(None), RouletteCode.is_active.is_(True),
            or_(RouletteCode.expires_at.is_(None), RouletteCode.expires_at > utcnow())
        )
    ) or 0

    total = sum(by_type.values())
    return {
        'total_spins': total,
        'spins_by_type': {t.value: by_type.get(t.value, 0) for t in SpinType},
        'spins_by_status': {s.value: by_status.get(s.value, 0) for s in PrizeStatus},
        'prize_distribution': [
            {'prize_id': pid, 'name': name, 'count': count,
             'percentage': round(count * 100.0 / total, 2) if total else 0.0}
            for pid, name, count in distribution
        ],
        'codes': {'used': codes_used, 'active': codes_active},
    }
