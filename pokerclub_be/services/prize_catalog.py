"""
Prize catalog: active prize listing, the probability-sum invariant and every
admin mutation of the wheel.

Each mutation runs inside one transaction. Changes are flushed, the position
and probability invariants are checked explicitly, and only then is the
transaction committed; any failure rolls back so the previous catalog stays
in place.
"""
from collections import namedtuple
from decimal import Decimal

from flask import current_app
from sqlalchemy import select, func

from pokerclub_be.models import db, RoulettePrize, RouletteSpin, PrizeBehavior
from pokerclub_be.exceptions import ConfigurationError, ConflictError, NotFoundException, ValidationException
from pokerclub_be.utils.helpers import utcnow, to_decimal
from pokerclub_be.utils.security_logger import SecurityLogger

ProbabilityCheck = namedtuple('ProbabilityCheck', ['valid', 'total', 'missing'])

PROBABILITY_TOLERANCE = Decimal('0.01')
MIN_POSITION = 1
MAX_POSITION = 20

EDITABLE_FIELDS = (
    'name', 'description', 'prize_type', 'prize_behavior', 'custom_config', 'prize_value',
    'prize_metadata', 'probability', 'is_active', 'color', 'position', 'min_deposit_required',
)

DEFAULT_PRIZES = [
    {'name': 'Weekly Tournament Ticket $20', 'description': 'Free entry to the weekly $20 tournament',
     'prize_type': 'tournament_ticket', 'prize_behavior': PrizeBehavior.MANUAL.value, 'prize_value': '20.00',
     'prize_metadata': {'tournament_id': 'weekly-tournament-20'}, 'probability': '20.00',
     'color': '#FF6B6B', 'position': 1},
    {'name': '50% Next Deposit Bonus', 'description': '50% extra on your next deposit (max $100)',
     'prize_type': 'deposit_bonus', 'prize_behavior': PrizeBehavior.BONUS.value, 'prize_value': '100.00',
     'custom_config': {'bonus_percentage': 50, 'max_bonus': 100, 'min_deposit': 20},
     'probability': '15.00', 'color': '#4ECDC4', 'position': 2, 'min_deposit_required': '20.00'},
    {'name': '$10 Cash Game', 'description': '$10 straight to your cash game balance',
     'prize_type': 'cash_game_money', 'prize_behavior': PrizeBehavior.INSTANT_CASH.value, 'prize_value': '10.00',
     'probability': '15.00', 'color': '#45B7D1', 'position': 3},
    {'name': 'Rakeback 10% x 3 days', 'description': 'Get back 10% of your rake for 3 days',
     'prize_type': 'rakeback', 'prize_behavior': PrizeBehavior.MANUAL.value, 'prize_value': '0.00',
     'prize_metadata': {'rakeback_percentage': 10, 'rakeback_days': 3}, 'probability': '15.00',
     'color': '#96CEB4', 'position': 4},
    {'name': '$5 Cash Game', 'description': '$5 straight to your balance',
     'prize_type': 'cash_game_money', 'prize_behavior': PrizeBehavior.INSTANT_CASH.value, 'prize_value': '5.00',
     'probability': '10.00', 'color': '#FFEAA7', 'position': 5},
    {'name': 'Poker Club Cap', 'description': 'Official club cap',
     'prize_type': 'merchandise', 'prize_behavior': PrizeBehavior.MANUAL.value, 'prize_value': '0.00',
     'prize_metadata': {'item_code': 'CAP-001', 'requires_shipping': True}, 'probability': '5.00',
     'color': '#DDA0DD', 'position': 6},
    {'name': 'Keep Trying', 'description': 'No prize this time, keep playing!',
     'prize_type': 'no_prize', 'prize_behavior': PrizeBehavior.MANUAL.value, 'prize_value': '0.00',
     'probability': '20.00', 'color': '#636E72', 'position': 7},
]


# --- Reads ---

def _live():
    return select(RoulettePrize).where(RoulettePrize.deleted_at.is_(None))


def list_active_prizes():
    stmt = _live().where(RoulettePrize.is_active.is_(True)).order_by(RoulettePrize.position.asc())
    return db.session.scalars(stmt).all()


def list_prizes(include_inactive=True):
    stmt = _live()
    if not include_inactive:
        stmt = stmt.where(RoulettePrize.is_active.is_(True))
    return db.session.scalars(stmt.order_by(RoulettePrize.position.asc())).all()


def get_prize(prize_id, include_deleted=False):
    prize = db.session.get(RoulettePrize, prize_id)
    if prize is None or (prize.deleted_at is not None and not include_deleted):
        raise NotFoundException(f"Prize {prize_id} not found.")
    return prize


def validate_probability_sum(prizes=None):
    """Check that active prize probabilities add up to 100 (within 0.01)."""
    if prizes is None:
        prizes = list_active_prizes()
    total = sum((Decimal(p.probability) for p in prizes if p.is_active), Decimal('0'))
    missing = Decimal('100') - total
    return ProbabilityCheck(valid=abs(missing) < PROBABILITY_TOLERANCE, total=total, missing=missing)


def ensure_valid_catalog(prizes=None):
    check = validate_probability_sum(prizes)
    if not check.valid:
        raise ConfigurationError(
            f"Active prize probabilities must sum to 100%. Current total: {check.total}%.",
            details={'total': str(check.total), 'missing': str(check.missing)}
        )
    return check


def get_roulette_configuration():
    prizes = list_active_prizes()
    check = validate_probability_sum(prizes)
    return prizes, check


# --- Write-path validation ---

def check_position_available(position, exclude_id=None):
    if position is None:
        raise ValidationException("Position is required.", details={'position': ['Missing data for required field.']})
    if not MIN_POSITION <= position <= MAX_POSITION:
        raise ValidationException(
            f"Position must be between {MIN_POSITION} and {MAX_POSITION}.",
            details={'position': [f'Must be between {MIN_POSITION} and {MAX_POSITION}.']}
        )
    stmt = select(RoulettePrize.id).where(RoulettePrize.deleted_at.is_(None), RoulettePrize.position == position)
    if exclude_id is not None:
        stmt = stmt.where(RoulettePrize.id != exclude_id)
    holder = db.session.scalar(stmt)
    if holder is not None:
        raise ConflictError(
            f"Position {position} is already taken by another prize.",
            details={'position': position, 'prize_id': holder}
        )


def _validate_behavior(data):
    behavior = data.get('prize_behavior')
    if behavior is not None and behavior not in {b.value for b in PrizeBehavior}:
        raise ValidationException(f"Unknown prize behavior '{behavior}'.")


def _normalize(data):
    normalized = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    for key in ('prize_value', 'probability', 'min_deposit_required'):
        if key in normalized and normalized[key] is not None:
            normalized[key] = to_decimal(normalized[key])
    return normalized


def _active_snapshot():
    """Probability of every live active prize, keyed by id."""
    rows = db.session.execute(
        select(RoulettePrize.id, RoulettePrize.probability)
        .where(RoulettePrize.deleted_at.is_(None), RoulettePrize.is_active.is_(True))
    ).all()
    return {row.id: Decimal(row.probability) for row in rows}


def _commit_catalog_change(action, before, admin_id=None, details=None):
    """
    Flush pending catalog changes and commit, or roll back.

    The probability sum is enforced only when the active set differs from
    `before`; edits confined to inactive prizes are always accepted.
    """
    try:
        db.session.flush()
        if _active_snapshot() != before:
            ensure_valid_catalog()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if admin_id is not None:
        SecurityLogger.log_admin_event('ROULETTE_CATALOG_CHANGE', admin_id, action=action, details=details)
    current_app.logger.info(f"Roulette catalog change '{action}' committed.")


# --- Mutations ---

def create_prize(data, created_by):
    before = _active_snapshot()
    data = _normalize(data)
    _validate_behavior(data)
    check_position_available(data.get('position'))
    prize = RoulettePrize(created_by=created_by, **data)
    db.session.add(prize)
    _commit_catalog_change('create', before, created_by, {'position': prize.position, 'name': prize.name})
    return prize


def update_prize(prize_id, data, admin_id=None):
    prize = get_prize(prize_id)
    before = _active_snapshot()
    data = _normalize(data)
    _validate_behavior(data)
    if 'position' in data and data['position'] != prize.position:
        check_position_available(data['position'], exclude_id=prize.id)
    for key, value in data.items():
        setattr(prize, key, value)
    _commit_catalog_change('update', before, admin_id, {'prize_id': prize.id, 'fields': sorted(data)})
    return prize


def delete_prize(prize_id, admin_id=None):
    """Soft delete; spins keep pointing at the row, the position slot is freed."""
    prize = get_prize(prize_id)
    before = _active_snapshot()
    prize.is_active = False
    prize.deleted_at = utcnow()
    prize.position = None
    _commit_catalog_change('delete', before, admin_id, {'prize_id': prize.id})
    return prize


def _first_free_position():
    taken = set(db.session.scalars(
        select(RoulettePrize.position).where(RoulettePrize.deleted_at.is_(None), RoulettePrize.position.is_not(None))
    ).all())
    for position in range(MIN_POSITION, MAX_POSITION + 1):
        if position not in taken:
            return position
    raise ConflictError("All roulette positions are taken.")


def clone_prize(prize_id, created_by):
    """Copy a prize into the first free slot; the copy starts inactive."""
    source = get_prize(prize_id)
    before = _active_snapshot()
    clone = RoulettePrize(
        name=f"{source.name} (copy)"[:100],
        description=source.description,
        prize_type=source.prize_type,
        prize_behavior=source.prize_behavior,
        custom_config=dict(source.config),
        prize_value=source.prize_value,
        prize_metadata=dict(source.prize_metadata or {}),
        probability=source.probability,
        is_active=False,
        color=source.color,
        position=_first_free_position(),
        min_deposit_required=source.min_deposit_required,
        created_by=created_by,
    )
    db.session.add(clone)
    _commit_catalog_change('clone', before, created_by, {'source_id': source.id})
    return clone


def _prizes_by_id(prize_ids):
    prizes = {p.id: p for p in db.session.scalars(_live().where(RoulettePrize.id.in_(prize_ids))).all()}
    missing = [pid for pid in prize_ids if pid not in prizes]
    if missing:
        raise NotFoundException("Some prizes were not found.", details={'prize_ids': missing})
    return prizes


def reorder_prizes(items, admin_id=None):
    """items: [{'prize_id', 'position'}]; positions are swapped atomically."""
    positions = [item['position'] for item in items]
    if len(set(positions)) != len(positions):
        raise ConflictError("Duplicate positions in reorder request.")
    before = _active_snapshot()
    prizes = _prizes_by_id([item['prize_id'] for item in items])
    try:
        # Free every slot being moved first so swaps do not trip the unique constraint.
        for prize in prizes.values():
            prize.position = None
        db.session.flush()
        for item in items:
            check_position_available(item['position'], exclude_id=item['prize_id'])
            prizes[item['prize_id']].position = item['position']
    except Exception:
        db.session.rollback()
        raise
    _commit_catalog_change('reorder', before, admin_id, {'count': len(items)})
    return list_prizes()


def bulk_update_prizes(items, admin_id=None):
    """items: [{'prize_id', ...editable fields}] applied as one change."""
    before = _active_snapshot()
    prizes = _prizes_by_id([item['prize_id'] for item in items])
    try:
        for item in items:
            prize = prizes[item['prize_id']]
            data = _normalize(item)
            _validate_behavior(data)
            if 'position' in data and data['position'] != prize.position:
                check_position_available(data['position'], exclude_id=prize.id)
            for key, value in data.items():
                setattr(prize, key, value)
            db.session.flush()
    except Exception:
        db.session.rollback()
        raise
    _commit_catalog_change('bulk_update', before, admin_id, {'count': len(items)})
    return [prizes[item['prize_id']] for item in items]


def toggle_prizes_status(prize_ids, is_active, admin_id=None):
    before = _active_snapshot()
    prizes = _prizes_by_id(prize_ids)
    for prize in prizes.values():
        prize.is_active = is_active
    _commit_catalog_change('toggle_status', before, admin_id, {'prize_ids': prize_ids, 'is_active': is_active})
    return list(prizes.values())


def adjust_probabilities(items, admin_id=None):
    """items: [{'prize_id', 'probability'}]"""
    before = _active_snapshot()
    prizes = _prizes_by_id([item['prize_id'] for item in items])
    for item in items:
        prizes[item['prize_id']].probability = to_decimal(item['probability'])
    _commit_catalog_change('adjust_probabilities', before, admin_id, {'count': len(items)})
    return list_prizes()


def _replace_catalog(definitions, created_by):
    now = utcnow()
    for prize in db.session.scalars(_live()).all():
        prize.is_active = False
        prize.deleted_at = now
        prize.position = None
    db.session.flush()
    seen = set()
    for definition in definitions:
        data = _normalize(definition)
        _validate_behavior(data)
        if data.get('position') in seen:
            raise ConflictError(f"Position {data.get('position')} appears twice.")
        check_position_available(data.get('position'))
        seen.add(data['position'])
        db.session.add(RoulettePrize(created_by=created_by, **data))
    db.session.flush()


def reset_default_prizes(created_by):
    before = _active_snapshot()
    try:
        _replace_catalog(DEFAULT_PRIZES, created_by)
    except Exception:
        db.session.rollback()
        raise
    _commit_catalog_change('reset_defaults', before, created_by)
    return list_active_prizes()


def export_configuration():
    prizes = list_prizes()
    return {
        'version': 1,
        'exported_at': utcnow().isoformat(),
        'prizes': [
            {
                'name': p.name,
                'description': p.description,
                'prize_type': p.prize_type,
                'prize_behavior': p.prize_behavior,
                'custom_config': p.config,
                'prize_value': str(p.prize_value),
                'prize_metadata': p.prize_metadata or {},
                'probability': str(p.probability),
                'is_active': p.is_active,
                'color': p.color,
                'position': p.position,
                'min_deposit_required': str(p.min_deposit_required),
            }
            for p in prizes
        ],
    }


def import_configuration(payload, created_by):
    definitions = payload.get('prizes') or []
    if not definitions:
        raise ValidationException("Import payload contains no prizes.")
    before = _active_snapshot()
    try:
        _replace_catalog(definitions, created_by)
    except Exception:
        db.session.rollback()
        raise
    _commit_catalog_change('import', before, created_by, {'count': len(definitions)})
    return list_prizes()


def count_spins_for_prize(prize_id):
    return db.session.scalar(select(func.count(RouletteSpin.id)).where(RouletteSpin.prize_id == prize_id)) or 0
