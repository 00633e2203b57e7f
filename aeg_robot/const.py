"""Constants for the AEG RX9 / Electrolux Pure i9 robot manager.

This module contains all the constants used throughout the package,
including API endpoints, timing parameters, and rate limits.
"""

from datetime import timedelta

from . import __version__

PACKAGE_NAME = "aeg-robot"

BASE_URL = "https://api.developer.electrolux.one"
USER_AGENT = f"{PACKAGE_NAME}/{__version__}"

REQUEST_TIMEOUT = 5.0  # seconds

# Delays between retries of failed idempotent requests
RETRY_DELAY_MIN = 0.5  # seconds
RETRY_DELAY_MAX = 60.0  # seconds
RETRY_DELAY_FACTOR = 2.0

# Status codes that are never retried
NO_RETRY_STATUS_CODES = frozenset({404})

# Status codes from the token endpoint that indicate rejected credentials
AUTH_DENIED_STATUS_CODES = frozenset({400, 401, 403})

# Time before token expiry to request a refresh
REFRESH_WINDOW = timedelta(minutes=60)
# Delay between retrying failed authorization operations
REFRESH_RETRY_DELAY = timedelta(minutes=1)
# Delay before refreshing a token seeded from the configuration
NEW_TOKEN_REFRESH_DELAY = timedelta(minutes=5)

# Heartbeat watchdog timeout as a multiple of the interval, plus an offset
HEARTBEAT_TIMEOUT_MULTIPLE = 3
HEARTBEAT_TIMEOUT_OFFSET = 10.0  # seconds

# Controller timeouts as multiples of the status polling interval
TIMEOUT_REQUEST_POLL_MULTIPLE = 1
TIMEOUT_REQUEST_MIN = 10.0  # seconds
TIMEOUT_APPLIED_POLL_MULTIPLE = 3
TIMEOUT_APPLIED_MIN = 30.0  # seconds

# Daily API call limit
API_DAILY_LIMIT = 5000
# Share of the limit for status polling, leaving headroom for account polls
API_DAILY_POLL_LIMIT = int(API_DAILY_LIMIT * 0.9)
SECONDS_PER_DAY = 86400

# Default polling intervals
DEFAULT_STATUS_SECONDS = 30  # 2880 calls/day per robot vacuum cleaner
DEFAULT_APPLIANCES_SECONDS = 300
DEFAULT_FEED_SECONDS = 3600
DEFAULT_SERVER_HEALTH_SECONDS = 3600

# Appliance type of supported robot vacuum cleaners
ROBOT_APPLIANCE_TYPE = "PUREi9"

SERVER_HEALTHY_STATUS_CODE = 200
SERVER_HEALTHY_MESSAGE = "I am alive!"
