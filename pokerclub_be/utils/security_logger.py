"""
Audit event logging for the roulette and prize flows.

Events are emitted as single JSON payloads through the application logger so
they land in the structured log stream with the request id attached.
"""

import json
import logging
from flask import current_app, g, request

from pokerclub_be.utils.helpers import utcnow

SEVERITY_LEVELS = {
    'low': logging.INFO,
    'medium': logging.WARNING,
    'high': logging.ERROR,
    'critical': logging.CRITICAL,
}


def _envelope(category, sub_type, details, include_user_agent=False):
    try:
        request_id = g.get('request_id', 'N/A')
        ip_address = request.remote_addr
        user_agent = request.headers.get('User-Agent')
    except RuntimeError:
        # Outside request context (CLI, background notification thread)
        request_id, ip_address, user_agent = 'N/A', None, None
    event = {
        'event_type': category,
        'sub_type': sub_type,
        'timestamp': utcnow().isoformat(),
        'request_id': request_id,
        'ip_address': ip_address,
        'details': details or {},
    }
    if include_user_agent:
        event['user_agent'] = user_agent
    return event


def _emit(level, label, event):
    current_app.logger.log(level, f"{label}: {json.dumps(event, default=str)}")


class SecurityLogger:
    """Centralized audit event logging"""

    @staticmethod
    def log_financial_event(event_type: str, user_id: int, amount=None,
                            balance_before=None, balance_after=None,
                            reference: str = None, details: dict = None):
        """Balance-affecting events: instant cash credits and bonus grants."""
        event = _envelope('financial', event_type, details)
        event.update(user_id=user_id, amount=amount, balance_before=balance_before,
                     balance_after=balance_after, reference=reference)
        _emit(logging.INFO, 'FINANCIAL_EVENT', event)

    @staticmethod
    def log_game_event(event_type: str, user_id: int, spin_type: str = None,
                       spin_id: int = None, prize_id: int = None, details: dict = None):
        event = _envelope('game', event_type, details)
        event.update(user_id=user_id, game_type='prize_roulette', spin_type=spin_type,
                     spin_id=spin_id, prize_id=prize_id)
        _emit(logging.INFO, 'GAME_EVENT', event)

    @staticmethod
    def log_security_event(event_type: str, severity: str = 'medium', user_id: int = None,
                           details: dict = None):
        """Double-spend attempts, lost races and forbidden access."""
        event = _envelope('security', event_type, details, include_user_agent=True)
        event.update(severity=severity, user_id=user_id)
        _emit(SEVERITY_LEVELS.get(severity, logging.WARNING), 'SECURITY_EVENT', event)

    @staticmethod
    def log_admin_event(event_type: str, admin_user_id: int, target_user_id: int = None,
                        action: str = None, details: dict = None):
        event = _envelope('admin', event_type, details)
        event.update(admin_user_id=admin_user_id, target_user_id=target_user_id, action=action)
        _emit(logging.WARNING, 'ADMIN_EVENT', event)
