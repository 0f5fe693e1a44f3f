"""Prints JA3 fingerprints of captured ClientHello handshake messages.

Each input holds exactly one handshake message, record layer already
stripped, either as raw bytes or (with --hex) as hex text.
"""

import argparse
import json
import logging
import sys

from hello_common import logger
from hello_extensions import extension_kind
from hello_spec import ClientHello
from spec import Json, UnpackError
import client_hello
import ja3


def read_input(path: str, as_hex: bool) -> bytes:
    if path == '-':
        raw = sys.stdin.buffer.read()
    else:
        with open(path, 'rb') as fin:
            raw = fin.read()
    if as_hex:
        return bytes.fromhex(raw.decode('ascii'))
    return raw

def _reason(e: Exception) -> str:
    if isinstance(e, UnpackError):
        return e.description
    return str(e) or type(e).__name__

def describe(hello: ClientHello) -> Json:
    js = hello.jsonify()
    assert isinstance(js, dict) and isinstance(js['extensions'], list)
    for ext, ext_js in zip(hello.extensions, js['extensions']):
        kind = extension_kind(ext.id)
        if kind is not None and isinstance(ext_js, dict):
            try:
                ext_js['decoded'] = kind.unpack(bytes(ext.data)).jsonify()
            except UnpackError as e:
                # recorded in the listing instead of failing the whole input
                ext_js['decoded'] = None
                ext_js['error'] = e.description
    return js

def main(argv: list[str]|None = None) -> int:
    parser = argparse.ArgumentParser(description="Prints the JA3 fingerprint of ClientHello messages")

    parser.add_argument("inputs", nargs="+", help="Files holding one ClientHello handshake message each, or - for stdin")
    parser.add_argument("--hex", action="store_true", help="Inputs are hex text instead of raw bytes")
    parser.add_argument("--json", action="store_true", help="Also print the decoded ClientHello as JSON")
    parser.add_argument("--digest", action="store_true", help="Print the MD5 JA3 hash before each fingerprint")
    parser.add_argument("--debug", action="store_true", help="Turn on debug logging")

    args = parser.parse_args(argv)

    if args.debug:
        logger.setLevel(logging.DEBUG)

    status = 0
    for path in args.inputs:
        prefix = f'{path}\t' if len(args.inputs) > 1 else ''
        try:
            hello = client_hello.decode(read_input(path, args.hex))
            text = ja3.build_fingerprint(hello)
            if args.json:
                print(json.dumps(describe(hello), indent=2))
        except (OSError, ValueError) as e:
            print(f'{path}: not a usable ClientHello: {_reason(e)}', file=sys.stderr)
            status = 1
            continue
        if args.digest:
            print(f'{prefix}{ja3.fingerprint_digest(text)} {text}')
        else:
            print(f'{prefix}{text}')
    return status

if __name__ == '__main__':
    sys.exit(main())
