"""Constants for mogilefs-client."""

# Tracker commands
CMD_GET_PATHS = "GET_PATHS"
CMD_CREATE_OPEN = "CREATE_OPEN"
CMD_CREATE_CLOSE = "CREATE_CLOSE"

# Response line prefixes
RESPONSE_OK = "OK "
RESPONSE_ERR = "ERR "

# Error code mapped to "key not present" by exists()
ERR_UNKNOWN_KEY = "unknown_key"

# Field carrying the storage node URL in a CREATE_OPEN response
PATH_FIELD = "path"

# Defaults
DEFAULT_TRACKER_PORT = 7001
DEFAULT_TIMEOUT = 10.0
DEFAULT_LINGER = 30

# Environment overrides
ENV_TRACKERS = "MOGILEFS_TRACKERS"
ENV_TIMEOUT = "MOGILEFS_TIMEOUT"

# HTTP status a storage node returns for a stored object
HTTP_CREATED = 201

# Version
CLIENT_VERSION = "0.1.0"
