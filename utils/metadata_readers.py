"""
Metadata reader registry.

Readers are tried in order; the first one that claims a buffer produces the
result. Buffers no reader claims get an explicit 'unknown' result carrying
empty metadata.
"""
from typing import Optional, Tuple

from core.models import GenerationMetadata
from utils import png_reader
from utils.logging_config import get_logger
from utils.prompt_parser import parse_prompt_data

logger = get_logger('MetadataReaders')

UNKNOWN_FORMAT = 'unknown'


class NAIPngMetaReader:
    """Reads NovelAI generation parameters from the PNG ``Comment`` chunk."""
    format_name = 'nai'
    supported_extensions = ('.png',)

    def can_read(self, buffer: bytes) -> bool:
        return png_reader.is_png(buffer)

    def read(self, buffer: bytes) -> dict:
        comment = png_reader.read_comment(buffer)
        if comment is None:
            metadata = GenerationMetadata.empty()
        else:
            metadata = parse_prompt_data(comment)
        return {
            'success': True,
            'format': self.format_name,
            'metadata': metadata,
        }

    def get_dimensions(self, buffer: bytes) -> Optional[Tuple[int, int]]:
        return png_reader.read_dimensions(buffer)


# Add readers for other generators here, most specific first
READERS = [
    NAIPngMetaReader(),
]


def _normalize_extension(extension: str) -> str:
    extension = (extension or '').lower()
    if extension and not extension.startswith('.'):
        extension = '.' + extension
    return extension


def detect_and_read_metadata(buffer: bytes, extension: str) -> dict:
    """
    Extract metadata with the first reader that supports the extension and
    claims the buffer.

    Returns:
        {'success': bool, 'format': str, 'metadata': GenerationMetadata}
    """
    ext = _normalize_extension(extension)

    for reader in READERS:
        if ext in reader.supported_extensions and reader.can_read(buffer):
            return reader.read(buffer)

    logger.debug(f"No metadata reader claimed buffer with extension '{ext}'")
    return {
        'success': True,
        'format': UNKNOWN_FORMAT,
        'metadata': GenerationMetadata.empty(),
    }


def get_dimensions(buffer: bytes) -> Optional[Tuple[int, int]]:
    """Header dimensions from the first reader that claims the buffer."""
    for reader in READERS:
        if reader.can_read(buffer):
            return reader.get_dimensions(buffer)
    return None
