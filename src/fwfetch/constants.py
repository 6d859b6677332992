"""
Constants and configuration values for fwfetch.

This module contains the hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

APP_NAME = "fwfetch"

# GitHub API URLs
GITHUB_API_BASE = "https://api.github.com/repos"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GITHUB_API_TOKEN")

# Remote checksum manifest published alongside release assets
CHECKSUM_MANIFEST_NAME = "SHA256SUMS"

# Network timeouts (in seconds)
GITHUB_API_TIMEOUT = 10
DEFAULT_REQUEST_TIMEOUT = 30

# Download and retry settings
DEFAULT_CONNECT_RETRIES = 5
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_CHUNK_SIZE = 8192
DEFAULT_MAX_DOWNLOAD_ATTEMPTS = 3
RETRY_STATUS_FORCELIST = (408, 429, 500, 502, 503, 504)

# Hashing
HASH_READ_BUFFER_SIZE = 65536
HASH_FILE_SUFFIX = ".sha256"
SHA256_HEX_PATTERN = r"^[0-9a-f]{64}$"

# Cache layout
STAGING_DIR_NAME = ".staging"
STAGING_FILE_SUFFIX = ".part"

# External flashing tool probed for primary-format capability
FWUP_COMMAND = "fwup"
FWUP_PROBE_TIMEOUT = 10

# Error body truncation for user-facing HTTP messages
ERROR_BODY_MAX_CHARS = 200

# Logging configuration
LOGGER_NAME = APP_NAME
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "fwfetch.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Configuration file names
CONFIG_FILE_NAME = "fwfetch.yaml"

# Environment variable names
LOG_LEVEL_ENV_VAR = "FWFETCH_LOG_LEVEL"

# Confirmation answers accepted for the degraded-trust prompt
AFFIRMATIVE_ANSWERS = ("y", "yes")
