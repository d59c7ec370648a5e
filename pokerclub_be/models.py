import enum
from datetime import datetime, timezone
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy
from passlib.hash import pbkdf2_sha256 as sha256
from sqlalchemy import Index, JSON, UniqueConstraint

db = SQLAlchemy()


class UserRole(str, enum.Enum):
    ADMIN = 'admin'
    AGENT = 'agent'
    EDITOR = 'editor'
    CLIENT = 'client'


class BonusType(str, enum.Enum):
    WELCOME = 'welcome'
    DEPOSIT = 'deposit'
    REFERRAL = 'referral'
    ACHIEVEMENT = 'achievement'
    CUSTOM = 'custom'
    ROULETTE_SPIN = 'roulette_spin'


class BonusStatus(str, enum.Enum):
    PENDING = 'pending'
    ACTIVE = 'active'
    CLAIMED = 'claimed'
    EXPIRED = 'expired'


class PrizeBehavior(str, enum.Enum):
    INSTANT_CASH = 'instant_cash'
    BONUS = 'bonus'
    MANUAL = 'manual'
    CUSTOM = 'custom'


class SpinType(str, enum.Enum):
    DEMO = 'demo'
    WELCOME_REAL = 'welcome_real'
    CODE = 'code'
    BONUS = 'bonus'


class PrizeStatus(str, enum.Enum):
    DEMO = 'demo'
    PENDING_VALIDATION = 'pending_validation'
    APPLIED = 'applied'
    REJECTED = 'rejected'


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default=UserRole.CLIENT.value, nullable=False, index=True)
    balance = db.Column(db.Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    vip_points = db.Column(db.Integer, default=0, nullable=False)
    unlocked_features = db.Column(JSON, nullable=True, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    # Roulette eligibility flags
    first_spin_demo_used = db.Column(db.Boolean, default=False, nullable=False)
    real_spin_available = db.Column(db.Boolean, default=False, nullable=False)
    validated_for_spin = db.Column(db.Boolean, default=False, nullable=False, index=True)
    spin_validated_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    spin_validated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    bonuses = db.relationship('Bonus', back_populates='user', foreign_keys='Bonus.assigned_to', lazy='dynamic')
    roulette_spins = db.relationship('RouletteSpin', back_populates='user', foreign_keys='RouletteSpin.user_id', lazy='dynamic')

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN.value

    @property
    def is_agent(self):
        return self.role in (UserRole.AGENT.value, UserRole.ADMIN.value)

    def check_password(self, password):
        return sha256.verify(password, self.password)

    @staticmethod
    def hash_password(password):
        return sha256.hash(password)

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


class Bonus(db.Model):
    __tablename__ = 'bonus'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(30), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), default=Decimal('0.00'), nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=True)
    min_deposit = db.Column(db.Numeric(10, 2), default=Decimal('0.00'), nullable=False)
    max_bonus = db.Column(db.Numeric(10, 2), nullable=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(20), default=BonusStatus.PENDING.value, nullable=False, index=True)
    valid_from = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    source_spin_id = db.Column(db.Integer, db.ForeignKey('roulette_spin.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship('User', back_populates='bonuses', foreign_keys=[assigned_to])

    __table_args__ = (Index('ix_bonus_assigned_to_type_status', 'assigned_to', 'type', 'status'),)

    def __repr__(self):
        return f"<Bonus {self.id} (User: {self.assigned_to}, Type: {self.type}, Status: {self.status})>"


class RouletteCode(db.Model):
    __tablename__ = 'roulette_code'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    grants_spin = db.Column(db.Boolean, default=True, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    used_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    max_uses = db.Column(db.Integer, default=1, nullable=False)
    uses_count = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    creator = db.relationship('User', foreign_keys=[created_by])
    used_by_user = db.relationship('User', foreign_keys=[used_by])

    @property
    def is_exhausted(self):
        return self.uses_count >= self.max_uses

    def __repr__(self):
        return f"<RouletteCode {self.code} ({self.uses_count}/{self.max_uses})>"


class RoulettePrize(db.Model):
    __tablename__ = 'roulette_prize'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    prize_type = db.Column(db.String(50), nullable=False)
    prize_behavior = db.Column(db.String(20), default=PrizeBehavior.MANUAL.value, nullable=False)
    custom_config = db.Column(JSON, nullable=True, default=dict)
    prize_value = db.Column(db.Numeric(10, 2), default=Decimal('0.00'), nullable=False)
    prize_metadata = db.Column(JSON, nullable=True, default=dict)
    probability = db.Column(db.Numeric(5, 2), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    color = db.Column(db.String(7), default='#000000', nullable=False)
    # Released (set to NULL) on soft delete so the slot can be reused.
    position = db.Column(db.Integer, nullable=True)
    min_deposit_required = db.Column(db.Numeric(10, 2), default=Decimal('0.00'), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    creator = db.relationship('User', foreign_keys=[created_by])
    spins = db.relationship('RouletteSpin', back_populates='prize', lazy='dynamic')

    __table_args__ = (UniqueConstraint('position', name='uq_roulette_prize_position'),)

    @property
    def config(self):
        return self.custom_config or {}

    def __repr__(self):
        return f"<RoulettePrize {self.id} ({self.name}, pos {self.position}, {self.probability}%)>"


class RouletteSpin(db.Model):
    __tablename__ = 'roulette_spin'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    prize_id = db.Column(db.Integer, db.ForeignKey('roulette_prize.id'), nullable=False, index=True)
    spin_type = db.Column(db.String(20), nullable=False)
    is_real_prize = db.Column(db.Boolean, default=False, nullable=False)
    code_used = db.Column(db.String(20), nullable=True)
    spin_date = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    prize_status = db.Column(db.String(30), default=PrizeStatus.DEMO.value, nullable=False)
    validated_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    prize_expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    user = db.relationship('User', back_populates='roulette_spins', foreign_keys=[user_id])
    validator = db.relationship('User', foreign_keys=[validated_by])
    prize = db.relationship('RoulettePrize', back_populates='spins')

    __table_args__ = (
        Index('ix_roulette_spin_user_type', 'user_id', 'spin_type'),
        Index('ix_roulette_spin_prize_status', 'prize_status'),
    )

    def __repr__(self):
        return f"<RouletteSpin {self.id} (User: {self.user_id}, Type: {self.spin_type}, Status: {self.prize_status})>"
