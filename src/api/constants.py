"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Methods accepted by the dispatch endpoint
DISPATCH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Request handling
REQUEST_BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Content types
JSON_CONTENT_TYPES = {"application/json", "text/json"}
FORM_URLENCODED_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Fallback controller action and the not-found message
NOT_FOUND_ACTION = "notFound"
PAGE_NOT_FOUND_MESSAGE = "404 - page not found."
