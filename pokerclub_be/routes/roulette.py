from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user

from ..exceptions import NotEligibleError
from ..models import PrizeStatus
from ..extensions import limiter
from ..schemas import (
    PublicPrizeSchema, SpinStatusSchema, SpinRequestSchema, RouletteSpinSchema, SpinListSchema,
    CheckCodeSchema, CreateCodesSchema, CodeListQuerySchema, RouletteCodeSchema, RouletteCodeListSchema
)
from ..services import eligibility, prize_catalog, roulette_service
from ..utils.decorators import agent_required

roulette_bp = Blueprint('roulette', __name__, url_prefix='/api/roulette')


def _spin_rate_limit():
    return current_app.config.get('ROULETTE_SPIN_RATE_LIMIT', '10 per minute')


# --- Player endpoints ---

@roulette_bp.route('/prizes', methods=['GET'])
def get_wheel():
    prizes, check = prize_catalog.get_roulette_configuration()
    return jsonify({
        'status': True,
        'prizes': PublicPrizeSchema(many=True).dump(prizes),
        'is_valid': check.valid,
    }), 200


@roulette_bp.route('/my-status', methods=['GET'])
@jwt_required()
def my_status():
    spin_status = eligibility.get_spin_status(current_user)
    return jsonify({'status': True, 'spin_status': SpinStatusSchema().dump(spin_status._asdict())}), 200


@roulette_bp.route('/spin', methods=['POST'])
@jwt_required()
@limiter.limit(_spin_rate_limit)
def spin():
    data = SpinRequestSchema().load(request.get_json() or {})
    record, prize = roulette_service.spin(current_user.id, data['spin_type'], data.get('code'))

    if not record.is_real_prize:
        message = f"Demo spin: you would have won {prize.name}. Get validated to play for real!"
    elif record.prize_status == PrizeStatus.APPLIED.value:
        message = f"Congratulations! {prize.name} has been credited to your account."
    else:
        message = f"You won {prize.name}! Your prize is pending validation."
    return jsonify({
        'status': True,
        'status_message': message,
        'spin': RouletteSpinSchema().dump(record),
    }), 200


@roulette_bp.route('/my-history', methods=['GET'])
@jwt_required()
def my_history():
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 10, type=int)
    history = roulette_service.get_spin_history(current_user.id, page, per_page)
    return jsonify({'status': True, 'history': SpinListSchema().dump(history)}), 200


@roulette_bp.route('/validate-code', methods=['POST'])
@jwt_required()
def validate_code():
    data = CheckCodeSchema().load(request.get_json() or {})
    try:
        code = roulette_service.check_code(data['code'], current_user)
    except NotEligibleError as e:
        return jsonify({
            'status': True,
            'valid': False,
            'status_message': e.status_message,
            'reason': e.details.get('reason'),
        }), 200
    return jsonify({
        'status': True,
        'valid': True,
        'status_message': 'Code is valid.',
        'code': {'code': code.code, 'description': code.description, 'expires_at': code.expires_at.isoformat() if code.expires_at else None},
    }), 200


# --- Agent endpoints ---

@roulette_bp.route('/codes', methods=['POST'])
@agent_required
def create_codes():
    data = CreateCodesSchema().load(request.get_json() or {})
    codes = roulette_service.create_codes(
        current_user,
        quantity=data['quantity'],
        expires_in_days=data.get('expires_in_days'),
        description=data.get('description'),
        max_uses=data['max_uses'],
    )
    return jsonify({
        'status': True,
        'status_message': f"{len(codes)} code(s) created.",
        'codes': RouletteCodeSchema(many=True).dump(codes),
    }), 201


@roulette_bp.route('/codes', methods=['GET'])
@agent_required
def list_codes():
    args = CodeListQuerySchema().load(request.args.to_dict())
    codes = roulette_service.list_codes(current_user, args['status'], args['page'], args['per_page'])
    return jsonify({'status': True, 'codes': RouletteCodeListSchema().dump(codes)}), 200
