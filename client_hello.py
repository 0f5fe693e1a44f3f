"""Decoding a raw ClientHello handshake message into a ClientHello record.

The input is exactly one handshake message (type byte, 3-byte length,
body) with the record layer already stripped off. Decoding is
all-or-nothing: either a complete ClientHello comes back or an exception
is raised and nothing decoded so far is kept around.
"""

import logging

from hello_common import logger, InvalidHandshakeType, ResourceError, UnpackError
from hello_spec import ClientHello, HandshakeTypes, Uint8, Uint24
from spec import LimitReader
from util import pformat


def decode_from(src: LimitReader) -> ClientHello:
    """Reads one ClientHello handshake message from src.

    Exactly 4 + L bytes are consumed on success, where L is the handshake
    length. Bytes left inside L after the extensions block are skipped.
    """
    typ = Uint8.unpack_from(src)
    if typ != HandshakeTypes.CLIENT_HELLO:
        raise InvalidHandshakeType(typ)
    length = Uint24.unpack_from(src)
    body = src.bounded(length)
    try:
        hello = ClientHello.unpack_from(body)
    except UnpackError as e:
        raise e.above(src.got, {'handshake_length': int(length), 'body': e.partial}) from e
    if body.limit:
        logger.debug(f'skipping {body.limit} bytes after the extensions block')
        body.skip_rest()
    return hello

def decode(raw: bytes) -> ClientHello:
    """Decodes one ClientHello handshake message.

    Raises InvalidHandshakeType if the first byte is not 1, Truncated if
    any declared length runs past its enclosing region or the end of raw,
    and ResourceError if memory runs out along the way.
    """
    src = LimitReader.from_raw(raw)
    try:
        hello = decode_from(src)
    except MemoryError as e:
        raise ResourceError(f'out of memory decoding {len(raw)}-byte ClientHello') from e
    except ValueError as e:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f'ClientHello decode failed: {e}')
        raise
    if src.limit:
        logger.debug(f'ignoring {src.limit} bytes after the handshake message')
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f'decoded ClientHello: {pformat(hello.jsonify())}')
    return hello

def encode(hello: ClientHello) -> bytes:
    """Packs a ClientHello back into a complete handshake message."""
    body = hello.pack()
    return (Uint8(HandshakeTypes.CLIENT_HELLO).pack()
            + Uint24(len(body)).pack()
            + body)
