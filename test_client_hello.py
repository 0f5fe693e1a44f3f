#!/usr/bin/env python3

"""Tests decoding of ClientHello handshake messages."""

import dataclasses
import gc
import logging
import tracemalloc

import pytest

from hello_common import InvalidHandshakeType, ProtocolError, ResourceError, StructuralError
from hello_spec import ClientHello
from spec import LimitReader, Truncated, UnpackError
import client_hello
from client_hello import decode, decode_from, encode

# ClientHello sent by an s2n-tls client, from a wire capture
CAPTURED_CLIENT_HELLO = bytes.fromhex("""
    01 00 00 c0 03 03 cb 34 ec b1 e7 81 63 ba 1c 38
    c6 da cb 19 6a 6d ff a2 1a 8d 99 12 ec 18 a2 ef
    62 83 02 4d ec e7 00 00 06 13 01 13 03 13 02 01
    00 00 91 00 00 00 0b 00 09 00 00 06 73 65 72 76
    65 72 ff 01 00 01 00 00 0a 00 14 00 12 00 1d 00
    17 00 18 00 19 01 00 01 01 01 02 01 03 01 04 00
    23 00 00 00 33 00 26 00 24 00 1d 00 20 99 38 1d
    e5 60 e4 bd 43 d2 3d 8e 43 5a 7d ba fe b3 c0 6e
    51 c1 3c ae 4d 54 13 69 1e 52 9a af 2c 00 2b 00
    03 02 03 04 00 0d 00 20 00 1e 04 03 05 03 06 03
    02 03 08 04 08 05 08 06 04 01 05 01 06 01 02 01
    04 02 05 02 06 02 02 02 00 2d 00 02 01 01 00 1c
    00 02 40 01
""")

RANDOM = bytes(range(32))
SESSION_ID = b'\x07' * 32

# offsets into encode(sample_hello())
SESSION_ID_LEN_AT = 4 + 2 + 32
CIPHERS_LEN_AT = SESSION_ID_LEN_AT + 1 + len(SESSION_ID)
COMPRESSION_LEN_AT = CIPHERS_LEN_AT + 2 + 6
EXTENSIONS_LEN_AT = COMPRESSION_LEN_AT + 1 + 1
FIRST_EXTENSION_LEN_AT = EXTENSIONS_LEN_AT + 2 + 2


def sample_hello(**kwargs: object) -> ClientHello:
    args: dict[str, object] = dict(
        version = 0x0303,
        client_random = RANDOM,
        session_id = SESSION_ID,
        cipher_suites = [0x1301, 0x1302, 0x00ff],
        compression_methods = [0],
        extensions = [
            (0, b'\x00\x00'),
            (10, bytes.fromhex('0004001d0017')),
            (11, b'\x01\x00'),
        ],
    )
    args.update(kwargs)
    return ClientHello.create(**args) # type: ignore[arg-type]

def patch(raw: bytes, offset: int, new: bytes) -> bytes:
    return raw[:offset] + new + raw[offset+len(new):]

def handshake(body: bytes) -> bytes:
    return b'\x01' + len(body).to_bytes(3) + body


def test_decode_preserves_fields() -> None:
    hello = decode(encode(sample_hello()))
    assert hello.version == 0x0303
    assert hello.client_random == RANDOM
    assert hello.session_id == SESSION_ID
    assert hello.cipher_suites == (0x1301, 0x1302, 0x00ff)
    assert hello.compression_methods == (0,)
    assert [ext.uncreate() for ext in hello.extensions] == [
        (0, b'\x00\x00'),
        (10, bytes.fromhex('0004001d0017')),
        (11, b'\x01\x00'),
    ]
    assert hello == sample_hello()

def test_decode_captured() -> None:
    hello = decode(CAPTURED_CLIENT_HELLO)
    assert hello.version == 0x0303
    assert hello.client_random.hex() == 'cb34ecb1e78163ba1c38c6dacb196a6dffa21a8d9912ec18a2ef6283024dece7'
    assert hello.session_id == b''
    assert hello.cipher_suites == (0x1301, 0x1303, 0x1302)
    assert hello.compression_methods == (0,)
    assert hello.extension_ids == (0, 65281, 10, 35, 51, 43, 13, 45, 28)
    sni = hello.find_extension(0)
    assert sni is not None
    assert sni.data == bytes.fromhex('0009000006') + b'server'
    assert encode(hello) == CAPTURED_CLIENT_HELLO

def test_empty_lists() -> None:
    hello = sample_hello(session_id=b'', cipher_suites=[], compression_methods=[], extensions=[])
    raw = encode(hello)
    assert raw.hex() == '01000028' '0303' + RANDOM.hex() + '00' '0000' '00' '0000'
    got = decode(raw)
    assert got == hello
    assert got.extensions == ()
    assert got.find_extension(10) is None

def test_invalid_handshake_type() -> None:
    raw = encode(sample_hello())
    for typ in (0, 2, 22, 255):
        with pytest.raises(InvalidHandshakeType) as info:
            decode(bytes([typ]) + raw[1:])
        assert info.value.typ == typ
        assert isinstance(info.value, ProtocolError)
        assert isinstance(info.value, ValueError)

def test_invalid_type_reads_nothing_more() -> None:
    src = LimitReader.from_raw(b'\x02' + encode(sample_hello())[1:])
    with pytest.raises(InvalidHandshakeType):
        decode_from(src)
    assert src.got == b'\x02'
    # a lone wrong type byte is a protocol error, not a truncation
    with pytest.raises(InvalidHandshakeType):
        decode(b'\x02')

def test_every_truncation_fails() -> None:
    raw = encode(sample_hello())
    for cut in range(len(raw)):
        with pytest.raises(Truncated):
            decode(raw[:cut])

def test_overlong_lengths_fail() -> None:
    raw = encode(sample_hello())
    body_len = len(raw) - 4
    cases = {
        'handshake length past buffer': patch(raw, 1, (body_len + 1).to_bytes(3)),
        'handshake length cuts random': patch(raw, 1, (20).to_bytes(3)),
        'session id': patch(raw, SESSION_ID_LEN_AT, b'\xff'),
        'cipher suites': patch(raw, CIPHERS_LEN_AT, b'\xff\xff'),
        'compression methods': patch(raw, COMPRESSION_LEN_AT, b'\xff'),
        'extensions block': patch(raw, EXTENSIONS_LEN_AT, b'\xff\xff'),
        'extension payload': patch(raw, FIRST_EXTENSION_LEN_AT, b'\x00\xff'),
    }
    for name, broken in cases.items():
        with pytest.raises(StructuralError):
            decode(broken)
            pytest.fail(f'{name} should not decode')

def test_partial_extension_header_fails() -> None:
    body = (bytes.fromhex('0303') + RANDOM + bytes.fromhex('00' '00021301' '0100')
            # one empty server_name extension, then a stray byte
            + bytes.fromhex('0005' '00000000' '00'))
    with pytest.raises(Truncated):
        decode(handshake(body))

def test_missing_extensions_block_fails() -> None:
    body = bytes.fromhex('0303') + RANDOM + bytes.fromhex('00' '00021301' '0100')
    with pytest.raises(Truncated):
        decode(handshake(body))

def test_odd_cipher_suite_length() -> None:
    body = (bytes.fromhex('0303') + RANDOM + bytes.fromhex('00')
            + bytes.fromhex('0003' '130113')
            + bytes.fromhex('0100')
            + bytes.fromhex('0004' '00170000'))
    hello = decode(handshake(body))
    assert hello.cipher_suites == (0x1301,)
    assert hello.compression_methods == (0,)
    assert hello.extension_ids == (23,)

def test_duplicate_extension_ids() -> None:
    hello = decode(encode(sample_hello(extensions=[(10, b'\x00\x02\x00\x1d'), (10, b'\x00\x02\x00\x17')])))
    assert hello.extension_ids == (10, 10)
    first = hello.find_extension(10)
    assert first is not None
    assert first.data == b'\x00\x02\x00\x1d'

def test_trailing_bytes_ignored(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger='helloprint')
    raw = encode(sample_hello())
    assert decode(raw + b'\xff\xff') == sample_hello()
    assert 'ignoring 2 bytes after the handshake message' in caplog.text

    src = LimitReader.from_raw(raw + b'\xff\xff')
    decode_from(src)
    assert src.limit == 2

def test_unparsed_body_bytes_skipped() -> None:
    body = sample_hello().pack() + b'\x00\x00\x00'
    src = LimitReader.from_raw(handshake(body) + b'\x01')
    assert decode_from(src) == sample_hello()
    assert src.limit == 1

def test_hello_is_immutable() -> None:
    hello = decode(encode(sample_hello()))
    with pytest.raises(dataclasses.FrozenInstanceError):
        hello.version = 0x0304 # type: ignore[misc]
    assert isinstance(hello.cipher_suites, tuple)

def test_failed_decode_skips_message_when_quiet(monkeypatch: pytest.MonkeyPatch,
                                                 caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger='helloprint')
    rendered: list[UnpackError] = []
    def render(self: UnpackError) -> str:
        rendered.append(self)
        return self.description
    monkeypatch.setattr(UnpackError, '__str__', render)
    with pytest.raises(Truncated):
        decode(encode(sample_hello())[:50])
    assert rendered == []

def test_out_of_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    def exhausted(src: LimitReader) -> ClientHello:
        raise MemoryError
    monkeypatch.setattr(client_hello, 'decode_from', exhausted)
    with pytest.raises(ResourceError) as info:
        decode(encode(sample_hello()))
    assert isinstance(info.value.__cause__, MemoryError)

def test_failed_decodes_retain_no_memory() -> None:
    raw = encode(sample_hello())
    broken = [raw[:cut] for cut in range(len(raw))]
    broken.append(patch(raw, EXTENSIONS_LEN_AT, b'\xff\xff'))

    def attempt_all() -> None:
        for chunk in broken:
            try:
                decode(chunk)
            except Truncated:
                pass

    attempt_all()
    gc.collect()
    tracemalloc.start()
    try:
        before, _ = tracemalloc.get_traced_memory()
        for _ in range(20):
            attempt_all()
        gc.collect()
        after, _ = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    assert after - before < 64 * 1024

