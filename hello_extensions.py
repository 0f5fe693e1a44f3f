"""Decoding of the few ClientHello extension payloads we understand.

Extension kinds live in a registry mapping each decoded type to its wire
id. get_extension() looks the id up, finds the first raw extension with
that id and unpacks its payload; adding a new kind is just another
@register_extension class.
"""

from typing import Self
from collections.abc import Callable

import spec
from hello_common import logger, ResourceError
from hello_spec import (
    ClientHello,
    ExtensionTypes,
    B8SeqUint8,
    B8SeqUint16,
    B16SeqUint16,
)
from util import OneToOne


class DecodedExtension[T: spec._Sequence](spec._Wrapper[T]):
    """A decoded extension payload that holds a list of integers."""

    @property
    def values(self) -> tuple[int,...]:
        return tuple(int(item) for item in self.data)

    @classmethod
    def create(cls, values: tuple[int,...] | list[int]) -> Self:
        return cls(data=cls._DATA_TYPE.create(values)) # type: ignore[attr-defined]


_registry: OneToOne[int, type[DecodedExtension]] = OneToOne()

def register_extension[D: DecodedExtension](ext_id: int) -> Callable[[type[D]], type[D]]:
    """Class decorator that makes a DecodedExtension type findable by get_extension().

    Each wire id can have only one decoded type and vice versa.
    """
    def decorate(kind: type[D]) -> type[D]:
        _registry.add(int(ext_id), kind)
        return kind
    return decorate

def extension_id(kind: type[DecodedExtension]) -> int:
    """The wire id a decoded extension type was registered under."""
    try:
        return _registry.get2(kind)
    except KeyError:
        raise KeyError(f'{kind.__name__} is not a registered extension kind') from None

def extension_kind(ext_id: int) -> type[DecodedExtension] | None:
    try:
        return _registry.get1(ext_id)
    except KeyError:
        return None


@register_extension(ExtensionTypes.SUPPORTED_VERSIONS)
class SupportedVersions(DecodedExtension[B8SeqUint16]):
    # rfc8446#section-4.2.1
    _DATA_TYPE = B8SeqUint16

    @property
    def versions(self) -> tuple[int,...]:
        return self.values

@register_extension(ExtensionTypes.SUPPORTED_GROUPS)
class SupportedGroups(DecodedExtension[B16SeqUint16]):
    # rfc8446#section-4.2.7
    _DATA_TYPE = B16SeqUint16

    @property
    def groups(self) -> tuple[int,...]:
        return self.values

@register_extension(ExtensionTypes.EC_POINT_FORMATS)
class SupportedPointFormats(DecodedExtension[B8SeqUint8]):
    # rfc8422#section-5.1.2
    _DATA_TYPE = B8SeqUint8

    @property
    def formats(self) -> tuple[int,...]:
        return self.values


def get_extension[D: DecodedExtension](hello: ClientHello, kind: type[D]) -> D | None:
    """Decodes the first extension of the given kind in hello.

    Returns None when hello has no extension with that kind's id. Raises
    Truncated when the payload's own length prefix runs past the payload,
    and KeyError when kind was never registered.
    """
    ext_id = extension_id(kind)
    raw = hello.find_extension(ext_id)
    if raw is None:
        return None
    try:
        src = spec.LimitReader.from_raw(bytes(raw.data))
        decoded = kind.unpack_from(src)
    except MemoryError as e:
        raise ResourceError(f'out of memory decoding extension {ext_id}') from e
    if src.limit:
        logger.debug(f'ignoring {src.limit} bytes after the {kind.__name__} list')
    logger.debug(f'{kind.__name__} from extension {ext_id}: {list(decoded.values)}')
    return decoded
