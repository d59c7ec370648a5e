from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import current_user

from ..exceptions import ValidationException
from ..schemas import (
    RoulettePrizeSchema, PrizeCreateSchema, PrizeFieldsSchema, ReorderSchema, BulkUpdateSchema,
    ToggleStatusSchema, AdjustProbabilitiesSchema, ImportConfigSchema, PreviewQuerySchema,
    RouletteSpinSchema, PendingSpinSchema, RejectSpinSchema, ValidateUserSchema, ValidateBatchSchema,
    StatsQuerySchema, UserSummarySchema
)
from ..services import prize_catalog, roulette_service, validation_workflow
from ..services.spin_resolver import cumulative_ranges, get_random_source, simulate_draws
from ..utils.decorators import admin_required

# Admin side of the roulette, sharing the player blueprint's prefix.
admin_bp = Blueprint('roulette_admin', __name__, url_prefix='/api/roulette')


def _check_payload(check):
    return {'valid': check.valid, 'total': str(check.total), 'missing': str(check.missing)}


def _catalog_response(prizes, status_message, status_code=200, **extra):
    body = {
        'status': True,
        'status_message': status_message,
        'prizes': RoulettePrizeSchema(many=True).dump(prizes),
        'probability_check': _check_payload(prize_catalog.validate_probability_sum()),
    }
    body.update(extra)
    return jsonify(body), status_code


# --- Catalog ---

@admin_bp.route('/config', methods=['GET'])
@admin_required
def get_config():
    prizes = prize_catalog.list_prizes(include_inactive=True)
    return jsonify({
        'status': True,
        'prizes': RoulettePrizeSchema(many=True).dump(prizes),
        'probability_check': _check_payload(prize_catalog.validate_probability_sum()),
        'ranges': [
            {**r, 'lower': str(r['lower']), 'upper': str(r['upper'])}
            for r in cumulative_ranges(prize_catalog.list_active_prizes())
        ],
    }), 200


@admin_bp.route('/prizes', methods=['POST'])
@admin_required
def create_prize():
    data = PrizeCreateSchema().load(request.get_json() or {})
    prize = prize_catalog.create_prize(data, current_user.id)
    return jsonify({'status': True, 'status_message': 'Prize created.', 'prize': RoulettePrizeSchema().dump(prize)}), 201


@admin_bp.route('/prizes/<int:prize_id>', methods=['PUT'])
@admin_required
def update_prize(prize_id):
    data = PrizeFieldsSchema().load(request.get_json() or {})
    if not data:
        raise ValidationException("No fields to update.")
    prize = prize_catalog.update_prize(prize_id, data, current_user.id)
    return jsonify({'status': True, 'status_message': 'Prize updated.', 'prize': RoulettePrizeSchema().dump(prize)}), 200


@admin_bp.route('/prizes/<int:prize_id>', methods=['DELETE'])
@admin_required
def delete_prize(prize_id):
    spins = prize_catalog.count_spins_for_prize(prize_id)
    prize_catalog.delete_prize(prize_id, current_user.id)
    return jsonify({
        'status': True,
        'status_message': 'Prize deleted.',
        'existing_spins': spins,
    }), 200


@admin_bp.route('/prizes/<int:prize_id>/clone', methods=['POST'])
@admin_required
def clone_prize(prize_id):
    prize = prize_catalog.clone_prize(prize_id, current_user.id)
    return jsonify({'status': True, 'status_message': 'Prize cloned (inactive).', 'prize': RoulettePrizeSchema().dump(prize)}), 201


@admin_bp.route('/prizes/reorder', methods=['PUT'])
@admin_required
def reorder_prizes():
    data = ReorderSchema().load(request.get_json() or {})
    prizes = prize_catalog.reorder_prizes(data['prizes'], current_user.id)
    return _catalog_response(prizes, 'Prizes reordered.')


@admin_bp.route('/prizes/bulk-update', methods=['PUT'])
@admin_required
def bulk_update_prizes():
    data = BulkUpdateSchema().load(request.get_json() or {})
    prize_catalog.bulk_update_prizes(data['prizes'], current_user.id)
    return _catalog_response(prize_catalog.list_prizes(), 'Prizes updated.')


@admin_bp.route('/prizes/toggle-status', methods=['PUT'])
@admin_required
def toggle_prizes_status():
    data = ToggleStatusSchema().load(request.get_json() or {})
    prize_catalog.toggle_prizes_status(data['prize_ids'], data['is_active'], current_user.id)
    return _catalog_response(prize_catalog.list_prizes(), 'Prize status updated.')


@admin_bp.route('/prizes/adjust-probabilities', methods=['PUT'])
@admin_required
def adjust_probabilities():
    data = AdjustProbabilitiesSchema().load(request.get_json() or {})
    prizes = prize_catalog.adjust_probabilities(data['prizes'], current_user.id)
    return _catalog_response(prizes, 'Probabilities updated.')


@admin_bp.route('/reset-defaults', methods=['POST'])
@admin_required
def reset_defaults():
    prizes = prize_catalog.reset_default_prizes(current_user.id)
    return _catalog_response(prizes, 'Default prizes restored.')


@admin_bp.route('/preview', methods=['GET'])
@admin_required
def preview():
    args = PreviewQuerySchema().load(request.args.to_dict())
    max_draws = current_app.config.get('ROULETTE_PREVIEW_MAX_DRAWS', 100000)
    if args['draws'] > max_draws:
        raise ValidationException(f"draws must not exceed {max_draws}.", details={'draws': [f'Max {max_draws}.']})
    prizes = prize_catalog.list_active_prizes()
    prize_catalog.ensure_valid_catalog(prizes)
    results = simulate_draws(prizes, args['draws'], get_random_source())
    return jsonify({'status': True, 'draws': args['draws'], 'results': results}), 200


@admin_bp.route('/config/export', methods=['GET'])
@admin_required
def export_config():
    return jsonify({'status': True, 'configuration': prize_catalog.export_configuration()}), 200


@admin_bp.route('/config/import', methods=['POST'])
@admin_required
def import_config():
    payload = request.get_json() or {}
    data = ImportConfigSchema().load(payload.get('configuration', payload))
    prizes = prize_catalog.import_configuration(data, current_user.id)
    return _catalog_response(prizes, 'Configuration imported.')


# --- Validation workflow ---

@admin_bp.route('/pending-validations', methods=['GET'])
@admin_required
def pending_validations():
    spins = validation_workflow.list_pending_validations()
    return jsonify({'status': True, 'pending': PendingSpinSchema(many=True).dump(spins)}), 200


@admin_bp.route('/pending-spins', methods=['GET'])
@admin_required
def pending_spins():
    spins = validation_workflow.list_pending_spins()
    return jsonify({'status': True, 'pending': PendingSpinSchema(many=True).dump(spins)}), 200


@admin_bp.route('/validate/<int:user_id>', methods=['PUT'])
@admin_required
def validate_user(user_id):
    data = ValidateUserSchema().load(request.get_json(silent=True) or {})
    user = validation_workflow.validate_user_for_spin(user_id, current_user, data.get('notes'))
    return jsonify({
        'status': True,
        'status_message': f"User {user.username} validated for the real spin.",
        'user': UserSummarySchema().dump(user),
    }), 200


@admin_bp.route('/validate-batch', methods=['POST'])
@admin_required
def validate_batch():
    data = ValidateBatchSchema().load(request.get_json() or {})
    validated, skipped = validation_workflow.validate_users_batch(data['user_ids'], current_user)
    return jsonify({
        'status': True,
        'status_message': f"{len(validated)} user(s) validated.",
        'validated': [u.id for u in validated],
        'skipped': skipped,
    }), 200


@admin_bp.route('/spins/<int:spin_id>/approve', methods=['POST'])
@admin_required
def approve_spin(spin_id):
    spin = validation_workflow.approve_spin(spin_id, current_user)
    return jsonify({'status': True, 'status_message': 'Prize applied.', 'spin': RouletteSpinSchema().dump(spin)}), 200


@admin_bp.route('/spins/<int:spin_id>/reject', methods=['POST'])
@admin_required
def reject_spin(spin_id):
    data = RejectSpinSchema().load(request.get_json(silent=True) or {})
    spin = validation_workflow.reject_spin(spin_id, current_user, data.get('notes'))
    return jsonify({'status': True, 'status_message': 'Spin rejected.', 'spin': RouletteSpinSchema().dump(spin)}), 200


@admin_bp.route('/stats', methods=['GET'])
@admin_required
def stats():
    args = StatsQuerySchema().load(request.args.to_dict())
    return jsonify({'status': True, 'stats': roulette_service.get_stats(args.get('start'), args.get('end'))}), 200
