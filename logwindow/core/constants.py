"""
System-Wide Constants for the Windowed Log-Count Cache

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

# =============================================================================
# CACHE
# =============================================================================
# Trailing minutes re-fetched when extending a cached window, to pick up
# late-arriving events near the previous boundary.
SAFETY_MARGIN_MINUTES: Final[int] = 2
SERIALIZE_FETCHES: Final[bool] = True

# =============================================================================
# UPSTREAM (DATADOG LOGS)
# =============================================================================
DATADOG_BASE_URL: Final[str] = "https://api.datadoghq.com"
DATADOG_LOGS_LIST_PATH: Final[str] = "/api/v1/logs-queries/list"
DATADOG_PAGE_LIMIT: Final[int] = 1000
DATADOG_STATUS_ERROR: Final[str] = "error"
REQUEST_TIMEOUT_S: Final[float] = 30.0

# =============================================================================
# RELIABILITY
# =============================================================================
RETRY_BASE_MS: Final[int] = 100
RETRY_MAX_DELAY_MS: Final[int] = 10 * SECOND_MS
RETRY_MAX_ATTEMPTS: Final[int] = 3

# =============================================================================
# DATA-SOURCE FRAMES
# =============================================================================
FRAME_NAME: Final[str] = "response"
TIME_FIELD: Final[str] = "time"
COUNT_FIELD: Final[str] = "entries"
HEALTH_OK_MESSAGE: Final[str] = "Data source is working"
HEALTH_ERROR_MESSAGE: Final[str] = "Unable to communicate with Datadog"
