"""Constants for diffgate."""

# State directory at the git root
DIFFGATE_DIR = ".diffgate"

# Files inside DIFFGATE_DIR
SNAPSHOT_FILE = "snapshot.json"
CONFIG_FILE = "config.yaml"

# Marker directory searched for when walking up to the repository root
GIT_DIR = ".git"

# Snapshot schema version
SNAPSHOT_VERSION = 1

# Defaults
DEFAULT_EXEC_TIMEOUT = 300.0
DEFAULT_HASH_WORKERS = 4
DEFAULT_GIT_TIMEOUT = 30.0

# Version
DIFFGATE_VERSION = "0.1.0"
