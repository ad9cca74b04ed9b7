"""Internal constants shared across the library."""

USER_AGENT = "zensync/1"

DEFAULT_POLL_INTERVAL: float = 30.0
DEFAULT_SYNC_INTERVAL: float = 30.0
DEFAULT_REQUEST_TIMEOUT: float = 10.0

#: Namespace used when no user identifier can be derived from a token.
PLACEHOLDER_USER_ID = "default-user"

#: Namespace for process-wide settings that must survive account switches.
SETTINGS_NAMESPACE = "__settings__"
MOCK_MODE_SETTING = "mock-mode"

# Keys the tracker app keeps in sync for every signed-in user.
DEFAULT_TRACKED_KEYS: tuple[str, ...] = (
    "habits",
    "tasks",
    "zen-tracker-tasks",
    "zen-tracker-upcoming-tasks",
    "zen-tracker-energy-levels",
    "calendar-tasks",
    "calendar-habits",
)

# ------------------------------------------------------------------
# HTTP endpoints
# ------------------------------------------------------------------

DATA_ENDPOINT = "/api/data"
TIMESTAMPS_ENDPOINT = "/api/data/sync/timestamps"
BATCH_ENDPOINT = "/api/data/sync/batch"
LOGIN_ENDPOINT = "/api/auth/login"
REGISTER_ENDPOINT = "/api/auth/register"
USER_ENDPOINT = "/api/auth/user"
HEALTH_ENDPOINT = "/api/health"
