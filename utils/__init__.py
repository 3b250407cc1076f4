from .file_utils import calculate_content_hash, original_key, lossless_key, sidecar_key
from .logging_config import get_logger, setup_logging
