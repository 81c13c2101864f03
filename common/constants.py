"""Project-wide constants (chunk size, backoff delays, naming)."""

CHUNK_SIZE_BYTES: int = 25 * 1000 * 1000  # webhook attachment ceiling

BOUNDARY_LENGTH: int = 32

SEND_RETRY_DELAY_SECONDS: float = 60
PARSE_RETRY_DELAY_SECONDS: float = 300
EDIT_RETRY_DELAY_SECONDS: float = 10

DEFAULT_HTTP_TIMEOUT_SECONDS: float = 60

TEMP_PREFIX = "webhook-backup."
DEFAULT_TEMP_ROOT = "/var/tmp"

ARCHIVE_CHUNK_NAME = "chunk_{index}.zip"
SCRIPT_CHUNK_NAME = "script_{level}_{index}"
ARCHIVE_OUTPUT_NAME = "dl_backup.zip"

DEFAULT_CONFIG_PATH = "backup_config"
DEFAULT_COMPRESSION_LEVEL: int = 9
