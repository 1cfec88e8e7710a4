"""Centralized constants for the memory capture hook."""

# Event reader
STDIN_TIMEOUT_SECONDS = 1.0

# Extraction
MEMORY_PATH_MARKER = "/memory/"
WRITE_TOOL = "Write"
EDIT_TOOL = "Edit"

# Signal filter
CONFIDENCE_THRESHOLD = 0.7

# Persistence
LEARNING_KIND = "learning"
LEARNING_TYPE = "insight"
MARKER_TAG = "auto-memory"

# Store server
DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 3847
SERVER_READY_TIMEOUT_SECONDS = 5.0
SERVER_POLL_INTERVAL_SECONDS = 0.1
REQUEST_TIMEOUT_SECONDS = 5.0

# Diagnostic channel tag
COMPONENT_TAG = "post_tool_memory"

# Local state
DEFAULT_HOME = "~/.memory-capture"
DEFAULT_KEY_FILE = f"{DEFAULT_HOME}/key"
DEFAULT_MEMORY_ROOT = f"{DEFAULT_HOME}/memory"

# Environment handed to a spawned store server
SERVER_ENV_PASSPHRASE = "MEMORY_STORE_PASSPHRASE"
SERVER_ENV_ROOT = "MEMORY_STORE_ROOT"
SERVER_ENV_PORT = "MEMORY_STORE_PORT"

# Store protocol
STORE_ENDPOINT = "/mcp"
STORE_TOOL_NAME = "memory_write"
STORE_PROTOCOL_VERSION = "2025-03-26"
