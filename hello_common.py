"""Common imports and classes across the ClientHello decoding and JA3 code."""

from config import DEBUG, LOG_FORMAT
from spec import UnpackError, Truncated

import logging
logger = logging.getLogger('helloprint')

logging.basicConfig(format=LOG_FORMAT)

if DEBUG:
    logger.setLevel(logging.DEBUG)
else:
    logger.setLevel(logging.WARNING)

# a declared length implies more bytes than the enclosing region holds
StructuralError = UnpackError

class HelloError(ValueError):
    pass

class ProtocolError(HelloError):
    pass

class InvalidHandshakeType(ProtocolError):
    def __init__(self, typ: int) -> None:
        super().__init__(f"expected handshake type 1 (ClientHello), got {typ}")
        self.typ = typ

class ResourceError(HelloError):
    pass
