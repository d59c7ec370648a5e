from pokerclub_be.error_codes import ErrorCodes

class AppException(Exception):
    def __init__(self, error_code, status_message, status_code, details=None, action_button=None):
        super().__init__(status_message)
        self.error_code = error_code
        self.status_message = status_message
        self.status_code = status_code
        self.details = details if details is not None else {}
        self.action_button = action_button if action_button is not None else {}

class ValidationException(AppException):
    def __init__(self, status_message="Validation failed", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.VALIDATION_ERROR,
            status_message=status_message,
            status_code=422,
            details=details,
            action_button=action_button
        )

class AuthorizationException(AppException):
    def __init__(self, status_message="Forbidden", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.FORBIDDEN,
            status_message=status_message,
            status_code=403,
            details=details,
            action_button=action_button
        )

class NotFoundException(AppException):
    def __init__(self, status_message="Resource not found", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.NOT_FOUND,
            status_message=status_message,
            status_code=404,
            details=details,
            action_button=action_button
        )

class InternalServerErrorException(AppException):
    def __init__(self, status_message="Internal server error", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
            status_message=status_message,
            status_code=500,
            details=details,
            action_button=action_button
        )

# --- Roulette ---

class ConfigurationError(AppException):
    """Active prize probabilities do not sum to 100, or the wheel has no prizes."""
    def __init__(self, status_message="Roulette configuration is invalid", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.ROULETTE_CONFIGURATION_INVALID,
            status_message=status_message,
            status_code=422,
            details=details,
            action_button=action_button
        )

class ConflictError(AppException):
    def __init__(self, status_message="Resource conflict", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.CONFLICT,
            status_message=status_message,
            status_code=409,
            details=details,
            action_button=action_button
        )

class AlreadyUsedError(AppException):
    def __init__(self, status_message="Spin already used", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.SPIN_ALREADY_USED,
            status_message=status_message,
            status_code=409,
            details=details,
            action_button=action_button
        )

class NotEligibleError(AppException):
    def __init__(self, status_message="Not eligible for this spin", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.SPIN_NOT_ELIGIBLE,
            status_message=status_message,
            status_code=403,
            details=details,
            action_button=action_button
        )

class AlreadyAppliedError(AppException):
    def __init__(self, status_message="Prize already applied", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.PRIZE_ALREADY_APPLIED,
            status_message=status_message,
            status_code=409,
            details=details,
            action_button=action_button
        )

class InvalidStateTransitionError(AppException):
    def __init__(self, status_message="Invalid spin state transition", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INVALID_STATE_TRANSITION,
            status_message=status_message,
            status_code=409,
            details=details,
            action_button=action_button
        )
