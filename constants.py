# -----------------------------------------------------------------------------
# SHORT CODES
# -----------------------------------------------------------------------------
# Uppercase alphanumeric, no confusing chars (no 0/O, 1/I)
SHORT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SHORT_CODE_LENGTH = 8

# -----------------------------------------------------------------------------
# REQUEST LIMITS
# -----------------------------------------------------------------------------
MAX_INSTALL_REF_LENGTH = 100
MAX_USER_AGENT_LENGTH = 512
MAX_CONTENT_ID_LENGTH = 64
MAX_INSTALL_SOURCE_LENGTH = 64
DEFAULT_INSTALL_SOURCE = "play_store"

# -----------------------------------------------------------------------------
# PRESENTATION
# -----------------------------------------------------------------------------
DEFAULT_CONTENT_TITLE = "AI Feature"

# -----------------------------------------------------------------------------
# ISSUANCE
# -----------------------------------------------------------------------------
# Fresh identifiers are drawn again if an insert loses a uniqueness race
MAX_INSERT_ATTEMPTS = 5

# -----------------------------------------------------------------------------
# RESOLUTION STRATEGIES (names are logged and returned in audit logs)
# -----------------------------------------------------------------------------
STRATEGY_REFERENCE = "reference"
STRATEGY_SHORT_CODE = "short_code"
STRATEGY_RECENCY = "recency"
STRATEGY_IP = "ip"
