"""Common application-wide constants."""

# Minutes an unpaid booking holds its seats unless the business overrides it
DEFAULT_AUTO_CANCEL_MINUTES = 30

# Metadata for system-driven booking cancellations
PAYMENT_TIMEOUT_REASON = "payment_timeout"
SYSTEM_ACTOR = "system"
GATEWAY_ACTOR = "gateway"

# Reference codes look like NTT-7K2Q9B
REF_CODE_PREFIX = "NTT-"
REF_CODE_LENGTH = 6
REF_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
REF_CODE_MAX_ATTEMPTS = 5


__all__ = [
    "DEFAULT_AUTO_CANCEL_MINUTES",
    "PAYMENT_TIMEOUT_REASON",
    "SYSTEM_ACTOR",
    "GATEWAY_ACTOR",
    "REF_CODE_PREFIX",
    "REF_CODE_LENGTH",
    "REF_CODE_ALPHABET",
    "REF_CODE_MAX_ATTEMPTS",
]
