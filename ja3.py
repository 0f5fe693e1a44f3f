"""JA3 fingerprints of TLS clients.

A JA3 string is five comma-separated fields taken from the ClientHello:

    version,ciphers,extensions,groups,point_formats

with each list field written as decimal values joined by '-'. GREASE
values are left out of the three 16-bit lists. The JA3 hash is the MD5
of that string, in lowercase hex.

https://github.com/salesforce/ja3
"""

from collections.abc import Iterable

from cryptography.hazmat.primitives.hashes import Hash, MD5

from hello_common import logger
from hello_spec import ClientHello, is_grease
from hello_extensions import get_extension, SupportedGroups, SupportedPointFormats
import client_hello


def _join(values: Iterable[int], skip_grease: bool = True) -> str:
    return '-'.join(str(value) for value in values
                    if not (skip_grease and is_grease(value)))

def build_fingerprint(hello: ClientHello) -> str:
    """The JA3 string of a decoded ClientHello."""
    groups = get_extension(hello, SupportedGroups)
    formats = get_extension(hello, SupportedPointFormats)
    fields = [
        str(int(hello.version)),
        _join(hello.cipher_suites),
        _join(hello.extension_ids),
        '' if groups is None else _join(groups.groups),
        # point formats are 8-bit and never GREASE
        '' if formats is None else _join(formats.formats, skip_grease=False),
    ]
    text = ','.join(fields)
    logger.debug(f'JA3 string {text}')
    return text

def fingerprint_digest(text: str) -> str:
    """The JA3 hash (hex MD5) of a JA3 string."""
    hasher = Hash(MD5())
    hasher.update(text.encode('ascii'))
    return hasher.finalize().hex()

def ja3_digest(hello: ClientHello) -> str:
    return fingerprint_digest(build_fingerprint(hello))

def fingerprint_bytes(raw: bytes) -> str:
    """Decodes a raw ClientHello handshake message and returns its JA3 string."""
    return build_fingerprint(client_hello.decode(raw))
