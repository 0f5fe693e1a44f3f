"""Building blocks for length-prefixed binary structures.

Every Spec subclass knows how to pack itself into bytes, unpack itself
from bytes or from a LimitReader, and render itself as Json.
"""

from typing import Self, BinaryIO, Protocol, ClassVar, override
from dataclasses import dataclass, field
from io import BytesIO
from textwrap import dedent
from util import pformat

type Json = int | float | str | bool | None | list[Json] | dict[str, Json]

ERROR_VAL = '!!! ERROR HERE !!!'

@dataclass
class UnpackError(ValueError):
    source: bytes|Json
    description: str
    partial: Json = ERROR_VAL

    @override
    def __str__(self) -> str:
        return dedent(f"""\
            Error unpacking {pformat(self.source, byteslen=40)}
            {self.description}
            Partial result:
            {pformat(self.partial)}
            """)

    def above(self, source: bytes|Json, partial: Json) -> Self:
        return type(self)(source, self.description, partial)

class Truncated(UnpackError):
    pass

class _Readable(Protocol):
    def read(self, size: int, /) -> bytes: ...

@dataclass
class LimitReader:
    src: BinaryIO|_Readable
    limit: int|None = None
    got: bytearray = field(default_factory=bytearray)

    def read(self, size: int) -> bytes:
        if self.limit is not None and self.limit < size:
            limited = self.limit
            self.read(limited)
            raise Truncated(self.got, f"tried to read {size} bytes but limit was {limited}")
        raw = self.src.read(size)
        self.got.extend(raw)
        if len(raw) != size:
            raise Truncated(self.got, f"tried to read {size} bytes but only got {len(raw)}")
        if self.limit is not None:
            self.limit -= size
        return raw

    @classmethod
    def from_raw(cls, raw: bytes) -> Self:
        return cls(src = BytesIO(raw), limit = len(raw))

    def bounded(self, limit: int) -> 'LimitReader':
        """A reader over the next limit bytes of this one."""
        return LimitReader(src = self, limit = limit)

    def skip_rest(self) -> int:
        """Reads and discards whatever is left under the limit."""
        if self.limit is None:
            raise ValueError("can't skip the rest when there is no limit")
        remaining = self.limit
        self.read(remaining)
        return remaining

    def assert_used_up(self) -> None:
        if self.limit is None:
            raise ValueError("can't check used_up when there is no limit")
        elif self.limit != 0:
            limited = self.limit
            extra = self.read(limited)
            raise UnpackError(self.got, f"extra bytes that should have been used up: {pformat(extra)}")


def force_write(dest: BinaryIO, data: bytes) -> None:
    written = dest.write(data)
    if written != len(data):
        raise ValueError(f"Error trying to write {len(data)} bytes; only wrote {written}")
    dest.flush()

class Spec:
    def jsonify(self) -> Json:
        raise NotImplementedError

    def packed_size(self) -> int:
        return len(self.pack())

    def pack(self) -> bytes:
        raise NotImplementedError

    def pack_to(self, dest: BinaryIO) -> int:
        raw = self.pack()
        force_write(dest, raw)
        return len(raw)

    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        raise NotImplementedError

    @classmethod
    def unpack_from(cls, src: LimitReader) -> Self:
        raise NotImplementedError

class _Wrapper[T: Spec](Spec):
    _DATA_TYPE: type[T]

    def __init__(self, data: T) -> None:
        if not isinstance(data, self._DATA_TYPE):
            raise ValueError(f"expected type {self._DATA_TYPE}, got {data}")
        self._data = data

    @property
    def data(self) -> T:
        return self._data

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and self.data == other.data # type: ignore

    def __hash__(self) -> int:
        return hash((type(self), self.data))

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.data!r})'

    @override
    def jsonify(self) -> Json:
        return self.data.jsonify()

    @override
    def packed_size(self) -> int:
        return self.data.packed_size()

    @override
    def pack(self) -> bytes:
        return self.data.pack()

    @override
    def pack_to(self, dest: BinaryIO) -> int:
        return self.data.pack_to(dest)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        return cls(data = cls._DATA_TYPE.unpack(raw))

    @override
    @classmethod
    def unpack_from(cls, src: LimitReader) -> Self:
        return cls(data=cls._DATA_TYPE.unpack_from(src))

class _Fixed(Spec):
    _BYTE_LENGTH: int

    @override
    def packed_size(self) -> int:
        return self._BYTE_LENGTH

    @override
    @classmethod
    def unpack_from(cls, src: LimitReader) -> Self:
        return cls.unpack(src.read(cls._BYTE_LENGTH))

class _Integral(_Fixed, int):
    def __new__(cls, value: int) -> Self:
        return int.__new__(cls, value)

    def __init__(self, value: int) -> None:
        _Fixed.__init__(self)
        upper = 2**(self._BYTE_LENGTH * 8)
        if not (0 <= value < upper):
            raise ValueError(f"{value} is not between 0 and {upper-1}")

    @override
    def jsonify(self) -> Json:
        return int(self)

    @override
    def pack(self) -> bytes:
        return self.to_bytes(self._BYTE_LENGTH)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        if len(raw) != cls._BYTE_LENGTH:
            raise UnpackError(raw, f"expected {cls._BYTE_LENGTH} bytes, got {raw.hex()}")
        return cls(int.from_bytes(raw))

class Raw(Spec, bytes):
    @override
    def jsonify(self) -> Json:
        return self.hex()

    @override
    def packed_size(self) -> int:
        return len(self)

    @override
    def pack(self) -> bytes:
        return bytes(self)

    @override
    def pack_to(self, dest: BinaryIO) -> int:
        force_write(dest, self)
        return len(self)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        return cls(raw)

class _FixRaw(Raw, _Fixed):
    def __init__(self, *args: object) -> None:
        if len(self) != self._BYTE_LENGTH:
            raise ValueError(f"expected {self._BYTE_LENGTH} bytes, got {self.hex()}")

    @override
    def packed_size(self) -> int:
        return self._BYTE_LENGTH

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        if len(raw) != cls._BYTE_LENGTH:
            raise UnpackError(raw, f"expected {cls._BYTE_LENGTH} bytes, got {len(raw)}")
        return cls(raw)

class _Sequence[T: Spec](Spec, tuple[T,...]):
    _ITEM_TYPE: type[T]

    @override
    def jsonify(self) -> Json:
        return [item.jsonify() for item in self]

    @override
    def packed_size(self) -> int:
        return sum(item.packed_size() for item in self)

    @override
    def pack(self) -> bytes:
        return b''.join(item.pack() for item in self)

    @override
    def pack_to(self, dest: BinaryIO) -> int:
        return sum(item.pack_to(dest) for item in self)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        buf = LimitReader.from_raw(raw)
        elts: list[T] = []
        while buf.limit:
            try:
                elts.append(cls._ITEM_TYPE.unpack_from(buf))
            except UnpackError as e:
                pelts: list[Json] = [x.jsonify() for x in elts]
                pelts.append(e.partial)
                raise e.above(raw, pelts) from e
        return cls(elts)

class _FixedSequence[T: _Fixed](_Sequence[T]):
    """Sequence of fixed-size items where a trailing partial item is dropped."""

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        size = cls._ITEM_TYPE._BYTE_LENGTH
        return cls(cls._ITEM_TYPE.unpack(raw[start:start+size])
                   for start in range(0, len(raw) - size + 1, size))

class _Bounded(Spec):
    """Mixin that puts a length prefix in front of its parent type.

    Use as the first base class, e.g. ``class B8Raw(_Bounded, Raw)``.
    Unpacking reads the length, then exactly that many bytes, and hands
    them to the parent type's unpack().
    """
    _LENGTH_TYPE: ClassVar[type[_Integral]]

    @override
    def packed_size(self) -> int:
        return self._LENGTH_TYPE._BYTE_LENGTH + super().packed_size()

    @override
    def pack(self) -> bytes:
        raw = super().pack()
        return self._LENGTH_TYPE(len(raw)).pack() + raw

    @override
    def pack_to(self, dest: BinaryIO) -> int:
        return Spec.pack_to(self, dest)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        # anything after the declared length is not part of this item
        return cls.unpack_from(LimitReader.from_raw(raw))

    @override
    @classmethod
    def unpack_from(cls, src: LimitReader) -> Self:
        length = cls._LENGTH_TYPE.unpack_from(src)
        supraw = src.read(length)
        try:
            return super().unpack(supraw) # type: ignore[misc]
        except UnpackError as e:
            raise e.above(src.got, {'bounded_size': int(length), 'data': e.partial}) from e

@dataclass(frozen=True)
class _StructBase(Spec):
    _member_names: ClassVar[tuple[str,...]]
    _member_types: ClassVar[tuple[type[Spec],...]]
    _member_values: tuple[Spec,...] = field(init=False, repr=False, hash=False, compare=False)

    def __post_init__(self) -> None:
        accum: list[Spec] = []
        for (name, typ) in zip(self._member_names, self._member_types):
            obj = getattr(self, name)
            if isinstance(obj, typ):
                accum.append(obj)
            else:
                raise ValueError(f'expected type {typ} for {name} field in {type(self).__name__}, got {obj}')
        object.__setattr__(self, '_member_values', tuple(accum))

    @override
    def jsonify(self) -> Json:
        return {name: value.jsonify()
                for (name,value) in zip(self._member_names, self._member_values)}

    @override
    def packed_size(self) -> int:
        return sum(value.packed_size() for value in self._member_values)

    @override
    def pack(self) -> bytes:
        return b''.join(value.pack() for value in self._member_values)

    @override
    def pack_to(self, dest: BinaryIO) -> int:
        return sum(value.pack_to(dest) for value in self._member_values)

    @override
    @classmethod
    def unpack(cls, raw: bytes) -> Self:
        buf = LimitReader.from_raw(raw)
        try:
            instance = cls.unpack_from(buf)
        except UnpackError as e:
            raise e.above(raw, e.partial) from e
        buf.assert_used_up()
        return instance

    @override
    @classmethod
    def unpack_from(cls, src: LimitReader) -> Self:
        accum = {}
        for (name, typ) in zip(cls._member_names, cls._member_types):
            try:
                accum[name] = typ.unpack_from(src)
            except UnpackError as e:
                part = {oname: val.jsonify() for oname,val in accum.items()}
                part[name] = e.partial
                raise e.above(src.got, part) from e
        return cls(**accum)
