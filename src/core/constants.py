"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Integer bounds accepted by request parameter validation (signed 64-bit)
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# Pagination
DEFAULT_MAX_LIMIT = 100

# Route name used when the request path has no first segment
GENERIC_ROUTE = "Generic"
