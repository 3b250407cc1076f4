"""
PNG chunk reader.

Walks the chunk stream of a PNG buffer and extracts the text stored under
the ``Comment`` keyword (NovelAI writes its generation parameters there),
plus a fast header-only dimension read.
"""
import struct
import zlib
from typing import Optional, Tuple

from utils.logging_config import get_logger

logger = get_logger('PngReader')

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
COMMENT_KEYWORD = 'Comment'

# length (4) + type (4) ... data ... crc (4)
_CHUNK_HEADER_SIZE = 8
_CHUNK_CRC_SIZE = 4


class NotAPngError(ValueError):
    """Raised when a buffer does not start with the PNG signature."""
    pass


def is_png(buffer: bytes) -> bool:
    """Check the 8-byte PNG signature."""
    return buffer[:len(PNG_SIGNATURE)] == PNG_SIGNATURE


def iter_chunks(buffer: bytes):
    """
    Yield (chunk_type, data) pairs after the signature.

    Stops after IEND or when the buffer runs out. A chunk whose declared
    length runs past the end of the buffer ends the walk.
    """
    offset = len(PNG_SIGNATURE)
    size = len(buffer)

    while offset + _CHUNK_HEADER_SIZE <= size:
        length, = struct.unpack('>I', buffer[offset:offset + 4])
        chunk_type = buffer[offset + 4:offset + 8].decode('ascii', errors='replace')
        start = offset + _CHUNK_HEADER_SIZE
        end = start + length
        if end > size:
            logger.debug(f"Truncated {chunk_type} chunk at offset {offset}")
            return

        yield chunk_type, buffer[start:end]

        if chunk_type == 'IEND':
            return
        offset = end + _CHUNK_CRC_SIZE


def _decode_text(data: bytes) -> Optional[Tuple[str, str]]:
    """tEXt: latin1 keyword, NUL, latin1 text."""
    sep = data.find(b'\x00')
    if sep == -1:
        return None
    return data[:sep].decode('latin-1'), data[sep + 1:].decode('latin-1')


def _decode_ztxt(data: bytes) -> Optional[Tuple[str, str]]:
    """zTXt: latin1 keyword, NUL, compression method, deflate stream."""
    sep = data.find(b'\x00')
    if sep == -1 or sep + 1 >= len(data):
        return None
    if data[sep + 1] != 0:
        return None  # only deflate is defined
    keyword = data[:sep].decode('latin-1')
    text = zlib.decompress(data[sep + 2:]).decode('latin-1')
    return keyword, text


def _decode_itxt(data: bytes) -> Optional[Tuple[str, str]]:
    """iTXt: utf8 keyword, NUL, flag, method, language NUL, translated keyword NUL, text."""
    sep = data.find(b'\x00')
    if sep == -1 or sep + 2 >= len(data):
        return None
    keyword = data[:sep].decode('utf-8', errors='replace')
    compressed = data[sep + 1] == 1
    offset = sep + 3

    lang_end = data.find(b'\x00', offset)
    if lang_end == -1:
        return None
    trans_end = data.find(b'\x00', lang_end + 1)
    if trans_end == -1:
        return None

    payload = data[trans_end + 1:]
    if compressed:
        payload = zlib.decompress(payload)
    return keyword, payload.decode('utf-8')


_TEXT_DECODERS = {
    'tEXt': _decode_text,
    'zTXt': _decode_ztxt,
    'iTXt': _decode_itxt,
}


def read_comment(buffer: bytes) -> Optional[str]:
    """
    Return the text of the first ``Comment`` text chunk, or None.

    Raises:
        NotAPngError: if the buffer lacks the PNG signature
    """
    if not is_png(buffer):
        raise NotAPngError("Not a valid PNG file")

    for chunk_type, data in iter_chunks(buffer):
        decoder = _TEXT_DECODERS.get(chunk_type)
        if decoder is None:
            continue
        try:
            decoded = decoder(data)
        except (zlib.error, UnicodeDecodeError) as e:
            logger.debug(f"Skipping undecodable {chunk_type} chunk: {e}")
            continue
        if decoded and decoded[0] == COMMENT_KEYWORD:
            return decoded[1]

    return None


def read_dimensions(buffer: bytes) -> Optional[Tuple[int, int]]:
    """
    Read (width, height) from the IHDR chunk.

    Only the first chunk is inspected. Returns None when the buffer is not a
    PNG or the first chunk is not a complete IHDR.
    """
    if not is_png(buffer):
        return None

    offset = len(PNG_SIGNATURE)
    if offset + _CHUNK_HEADER_SIZE > len(buffer):
        return None

    length, = struct.unpack('>I', buffer[offset:offset + 4])
    chunk_type = buffer[offset + 4:offset + 8]
    if chunk_type != b'IHDR' or length < 8:
        return None

    start = offset + _CHUNK_HEADER_SIZE
    if start + length > len(buffer):
        return None

    width, height = struct.unpack('>II', buffer[start:start + 8])
    return width, height
