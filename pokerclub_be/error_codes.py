class ErrorCodes:
    # Generic
    GENERIC_ERROR = "GENERIC_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Roulette
    ROULETTE_CONFIGURATION_INVALID = "ROULETTE_CONFIGURATION_INVALID"
    SPIN_ALREADY_USED = "SPIN_ALREADY_USED"
    SPIN_NOT_ELIGIBLE = "SPIN_NOT_ELIGIBLE"
    PRIZE_ALREADY_APPLIED = "PRIZE_ALREADY_APPLIED"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
