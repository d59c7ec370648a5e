from datetime import timezone

from marshmallow import Schema, fields, ValidationError, EXCLUDE, pre_load, validates_schema
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field
from marshmallow.validate import OneOf, Range, Length, Regexp

from .models import (
    db, User, Bonus, RouletteCode, RoulettePrize, RouletteSpin, PrizeBehavior, SpinType
)

PRIZE_BEHAVIORS = [b.value for b in PrizeBehavior]
SPIN_TYPES = [t.value for t in SpinType]
HEX_COLOR = Regexp(r'^#[0-9A-Fa-f]{6}$', error='Color must be a hex value like #FF6B6B.')


# --- Base Schemas (for pagination etc.) ---
class PaginationSchema(Schema):
    page = fields.Int(dump_only=True)
    pages = fields.Int(dump_only=True)
    per_page = fields.Int(dump_only=True)
    total = fields.Int(dump_only=True)


# --- User Schemas ---
class UserSummarySchema(SQLAlchemyAutoSchema):
    class Meta:
        model = User
        load_instance = True
        sqla_session = db.session
        fields = ('id', 'username', 'email', 'validated_for_spin', 'created_at')


class SpinStatusSchema(Schema):
    has_demo_available = fields.Bool()
    has_real_available = fields.Bool()
    demo_spin_done = fields.Bool()
    real_spin_done = fields.Bool()
    is_validated = fields.Bool()
    total_spins = fields.Int()
    available_bonus_spins = fields.Int()


# --- Prize Schemas ---
class RoulettePrizeSchema(SQLAlchemyAutoSchema):
    # Full admin view of a prize definition
    class Meta:
        model = RoulettePrize
        load_instance = True
        sqla_session = db.session
        include_fk = True

    id = auto_field(dump_only=True)
    prize_value = fields.Decimal(as_string=True)
    probability = fields.Decimal(as_string=True)
    min_deposit_required = fields.Decimal(as_string=True)


class PublicPrizeSchema(SQLAlchemyAutoSchema):
    # What players see on the wheel
    class Meta:
        model = RoulettePrize
        load_instance = True
        sqla_session = db.session
        fields = ('id', 'name', 'description', 'prize_type', 'prize_value', 'probability', 'color', 'position')

    prize_value = fields.Decimal(as_string=True)
    probability = fields.Decimal(as_string=True)


class PrizeFieldsSchema(Schema):
    """Editable prize fields; every field optional (updates)."""
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(validate=Length(min=1, max=100))
    description = fields.Str(allow_none=True)
    prize_type = fields.Str(validate=Length(min=1, max=50))
    prize_behavior = fields.Str(validate=OneOf(PRIZE_BEHAVIORS))
    custom_config = fields.Dict(allow_none=True)
    prize_value = fields.Decimal(validate=Range(min=0))
    prize_metadata = fields.Dict(allow_none=True)
    probability = fields.Decimal(validate=Range(min=0, max=100))
    is_active = fields.Bool()
    color = fields.Str(validate=HEX_COLOR)
    position = fields.Int(validate=Range(min=1, max=20))
    min_deposit_required = fields.Decimal(validate=Range(min=0))

    @validates_schema
    def validate_custom_action(self, data, **kwargs):
        if data.get('prize_behavior') == PrizeBehavior.CUSTOM.value:
            if not (data.get('custom_config') or {}).get('action'):
                raise ValidationError('Custom prizes need custom_config.action.', 'custom_config')


class PrizeCreateSchema(PrizeFieldsSchema):
    name = fields.Str(required=True, validate=Length(min=1, max=100))
    prize_type = fields.Str(required=True, validate=Length(min=1, max=50))
    probability = fields.Decimal(required=True, validate=Range(min=0, max=100))
    position = fields.Int(required=True, validate=Range(min=1, max=20))


class BulkUpdateItemSchema(PrizeFieldsSchema):
    prize_id = fields.Int(required=True)


class BulkUpdateSchema(Schema):
    prizes = fields.List(fields.Nested(BulkUpdateItemSchema), required=True, validate=Length(min=1))


class ReorderItemSchema(Schema):
    prize_id = fields.Int(required=True)
    position = fields.Int(required=True, validate=Range(min=1, max=20))


class ReorderSchema(Schema):
    prizes = fields.List(fields.Nested(ReorderItemSchema), required=True, validate=Length(min=1))


class ToggleStatusSchema(Schema):
    prize_ids = fields.List(fields.Int(), required=True, validate=Length(min=1))
    is_active = fields.Bool(required=True)


class ProbabilityItemSchema(Schema):
    prize_id = fields.Int(required=True)
    probability = fields.Decimal(required=True, validate=Range(min=0, max=100))


class AdjustProbabilitiesSchema(Schema):
    prizes = fields.List(fields.Nested(ProbabilityItemSchema), required=True, validate=Length(min=1))


class ImportConfigSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    prizes = fields.List(fields.Nested(PrizeCreateSchema), required=True, validate=Length(min=1))


class PreviewQuerySchema(Schema):
    draws = fields.Int(load_default=10000, validate=Range(min=1))


# --- Spin Schemas ---
class SpinRequestSchema(Schema):
    spin_type = fields.Str(required=True, validate=OneOf(SPIN_TYPES))
    code = fields.Str(allow_none=True, validate=Length(min=4, max=20))

    @pre_load
    def normalize_code(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('code'), str):
            data = dict(data, code=data['code'].strip().upper())
        return data

    @validates_schema
    def validate_code_spin(self, data, **kwargs):
        if data.get('spin_type') == SpinType.CODE.value and not data.get('code'):
            raise ValidationError('A code is required for code spins.', 'code')


class RouletteSpinSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = RouletteSpin
        load_instance = True
        sqla_session = db.session
        include_fk = True

    prize = fields.Nested(PublicPrizeSchema, dump_only=True)


class SpinListSchema(PaginationSchema):
    items = fields.Nested(RouletteSpinSchema, many=True, attribute='items')


class PendingSpinSchema(RouletteSpinSchema):
    user = fields.Nested(UserSummarySchema, dump_only=True)


class RejectSpinSchema(Schema):
    notes = fields.Str(allow_none=True, validate=Length(max=1000))


class ValidateUserSchema(Schema):
    notes = fields.Str(allow_none=True, validate=Length(max=1000))


class ValidateBatchSchema(Schema):
    user_ids = fields.List(fields.Int(), required=True, validate=Length(min=1, max=100))


class StatsQuerySchema(Schema):
    start = fields.AwareDateTime(default_timezone=timezone.utc, allow_none=True)
    end = fields.AwareDateTime(default_timezone=timezone.utc, allow_none=True)

    @validates_schema
    def validate_range(self, data, **kwargs):
        if data.get('start') and data.get('end') and data['start'] > data['end']:
            raise ValidationError('start must be before end.', 'start')


# --- Code Schemas ---
class CheckCodeSchema(Schema):
    code = fields.Str(required=True, validate=Length(min=4, max=20))

    @pre_load
    def normalize_code(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('code'), str):
            data = dict(data, code=data['code'].strip().upper())
        return data


class CreateCodesSchema(Schema):
    quantity = fields.Int(load_default=1, validate=Range(min=1, max=100))
    expires_in_days = fields.Int(allow_none=True, validate=Range(min=1, max=365))
    description = fields.Str(allow_none=True, validate=Length(max=255))
    max_uses = fields.Int(load_default=1, validate=Range(min=1, max=1000))


class CodeListQuerySchema(Schema):
    status = fields.Str(load_default='all', validate=OneOf(['all', 'active', 'used', 'expired']))
    page = fields.Int(load_default=1, validate=Range(min=1))
    per_page = fields.Int(load_default=20, validate=Range(min=1, max=100))


class RouletteCodeSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = RouletteCode
        load_instance = True
        sqla_session = db.session
        include_fk = True

    is_exhausted = fields.Bool(dump_only=True)


class RouletteCodeListSchema(PaginationSchema):
    items = fields.Nested(RouletteCodeSchema, many=True, attribute='items')


# --- Bonus Schemas ---
class BonusSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Bonus
        load_instance = True
        sqla_session = db.session
        include_fk = True

    amount = fields.Decimal(as_string=True)
    percentage = fields.Decimal(as_string=True, allow_none=True)
    min_deposit = fields.Decimal(as_string=True)
    max_bonus = fields.Decimal(as_string=True, allow_none=True)
