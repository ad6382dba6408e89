"""Infrastructure-related constants, particularly for the database."""

# Database constants
POOL_RECYCLE_SECONDS = 3600  # 1 hour
COMMAND_TIMEOUT_SECONDS = 60

# Statements longer than this are truncated in profiles and logs
MAX_LOGGED_STATEMENT_LENGTH = 500
