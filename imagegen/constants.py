"""Constants module for the image generation service.

Contains default values for the provider, response cache, asset downloads
and logging.
"""

# ============================================================================
# Provider Constants
# ============================================================================

DEFAULT_REPLICATE_MODEL = "black-forest-labs/flux-schnell"
DEFAULT_REPLICATE_BASE_URL = "https://api.replicate.com/v1"

# Prediction states reported by the predictions API
PREDICTION_SUCCEEDED = "succeeded"
PREDICTION_TERMINAL_STATES = frozenset({"succeeded", "failed", "canceled"})

# ============================================================================
# Path Resolution Constants
# ============================================================================

# Root for relative-mode output directories (mapped host volume in Docker)
DEFAULT_OUTPUT_ROOT = "/app/host_data"

# ============================================================================
# Cache Configuration Constants
# ============================================================================

DEFAULT_CACHE_TTL_SECONDS = 3600  # Time-to-live for cached responses (1 hour)
CACHE_KEY_LOG_PREFIX_LENGTH = 8  # Characters of the key shown in logs

# ============================================================================
# Download / Persistence Constants
# ============================================================================

DEFAULT_DOWNLOAD_MAX_RETRIES = 3  # Attempts per asset, including the first
DEFAULT_DOWNLOAD_RETRY_BASE_DELAY_SECONDS = 1.0  # Linear backoff base
DEFAULT_DOWNLOAD_CONCURRENCY = 3  # Window size for concurrent fetch+write

TEMP_FILE_SUFFIX = ".tmp"
DEFAULT_FILENAME_PREFIX = "output"

# ============================================================================
# Generation Defaults
# ============================================================================

DEFAULT_MEGAPIXELS = "1"
DEFAULT_NUM_OUTPUTS = 1
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_OUTPUT_FORMAT = "webp"
DEFAULT_OUTPUT_QUALITY = 80
DEFAULT_NUM_INFERENCE_STEPS = 4

MIN_NUM_OUTPUTS = 1
MAX_NUM_OUTPUTS = 4
MIN_OUTPUT_QUALITY = 1
MAX_OUTPUT_QUALITY = 100
MIN_INFERENCE_STEPS = 4
MAX_INFERENCE_STEPS = 20

# ============================================================================
# Logging Constants
# ============================================================================

LOG_STRING_MAX_LENGTH = 5000  # Maximum string length before truncation
