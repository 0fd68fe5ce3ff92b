"""Constants for tasklane.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Users
DEFAULT_TIMEZONE = "UTC"

# Text limits
MAX_TEXT_LENGTH = 500

# Virtual instances always report this position; they sort ahead of stored tasks.
VIRTUAL_POSITION = 0

# Range reads
MAX_RANGE_DAYS = 366

# Retry at the transaction boundary (deadlock / stale version / unique conflict)
MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 0.05  # multiplied by the attempt number
