from functools import wraps
from flask import current_app
from flask_jwt_extended import current_user, verify_jwt_in_request

from pokerclub_be.exceptions import AuthorizationException
from pokerclub_be.utils.security_logger import SecurityLogger


def _role_required(check, message):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            if not current_user or not check(current_user):
                user_id = current_user.id if current_user else None
                current_app.logger.warning(f"Access denied to {f.__name__} for user {user_id}.")
                SecurityLogger.log_security_event('ROLE_ACCESS_DENIED', 'low', user_id, {'endpoint': f.__name__})
                raise AuthorizationException(message)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Protect a route so only admins may call it. Implies @jwt_required()."""
    return _role_required(lambda user: user.is_admin, 'Admin access required.')(f)


def agent_required(f):
    """Agents and admins."""
    return _role_required(lambda user: user.is_agent, 'Agent or admin access required.')(f)
