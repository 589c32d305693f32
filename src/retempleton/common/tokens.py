#!/usr/bin/env python3
"""
common/tokens.py
================

Codec for Hadoop delegation tokens and token storage files.

WebHDFS and the YARN ResourceManager hand out delegation tokens as "URL
strings": the URL safe, unpadded base64 encoding of the token's `Writable`
serialization (identifier, password, kind, service). Hadoop processes pick up
tokens from the file named by `HADOOP_TOKEN_FILE_LOCATION`, which holds a
credentials object in token storage format:

    b"HDTS" | version (0) | vint n | n x (Text alias, Token) | vint 0 (secrets)

`Text` is a vint length followed by UTF-8 bytes. Integers use Hadoop's
`WritableUtils` variable length encoding.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

import base64
import io
from typing import IO

import msgspec

TOKEN_STORAGE_MAGIC = b"HDTS"
TOKEN_STORAGE_VERSION = 0
TOKEN_FILE_ENV = "HADOOP_TOKEN_FILE_LOCATION"
# job configuration key the ResourceManager delegation token is passed under
TOKEN_SIGNATURE_KEY = "templeton.resourcemanager.delegation.token"


class Token(msgspec.Struct, frozen=True):
    """A Hadoop delegation token.

    Attributes
    ----------
    identifier : bytes
        The serialized token identifier.
    password : bytes
        The token password.
    kind : str
        The token kind, e.g. `HDFS_DELEGATION_TOKEN`.
    service : str
        The service the token is valid for, e.g. `ha-hdfs:nameservice1`.
    """

    identifier: bytes
    password: bytes
    kind: str
    service: str

    @classmethod
    def decode(cls, url_string: str) -> Token:
        """Decode a token from its URL string form."""
        _padded = url_string + "=" * (-len(url_string) % 4)
        try:
            _raw = base64.urlsafe_b64decode(_padded.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise ValueError(f"Invalid delegation token string: {exc}") from exc
        return read_token(io.BytesIO(_raw))

    def encode(self) -> str:
        """Encode the token into its URL string form."""
        _buf = io.BytesIO()
        write_token(_buf, self)
        return base64.urlsafe_b64encode(_buf.getvalue()).decode("ascii").rstrip("=")


def write_vlong(out: IO[bytes], value: int):
    """Write `value` in Hadoop's `WritableUtils.writeVLong` encoding."""
    if -112 <= value <= 127:  # noqa: PLR2004
        out.write((value & 0xFF).to_bytes(1, "big"))
        return

    length = -112
    if value < 0:
        value ^= -1
        length = -120

    tmp = value
    while tmp != 0:
        tmp >>= 8
        length -= 1

    out.write((length & 0xFF).to_bytes(1, "big"))

    length = -(length + 120) if length < -120 else -(length + 112)  # noqa: PLR2004
    for idx in range(length, 0, -1):
        out.write(((value >> ((idx - 1) * 8)) & 0xFF).to_bytes(1, "big"))


def read_vlong(stream: IO[bytes]) -> int:
    """Read an integer in Hadoop's `WritableUtils.readVLong` encoding."""
    _first = stream.read(1)
    if not _first:
        raise ValueError("Unexpected end of token data")
    first = int.from_bytes(_first, "big", signed=True)
    if first >= -112:  # noqa: PLR2004
        return first

    size = -119 - first if first < -120 else -111 - first  # noqa: PLR2004
    _rest = stream.read(size - 1)
    if len(_rest) != size - 1:
        raise ValueError("Unexpected end of token data")
    value = int.from_bytes(_rest, "big")
    negative = first < -120  # noqa: PLR2004
    return value ^ -1 if negative else value


def _write_bytes(out: IO[bytes], data: bytes):
    write_vlong(out, len(data))
    out.write(data)


def _read_bytes(stream: IO[bytes]) -> bytes:
    length = read_vlong(stream)
    if length < 0:
        raise ValueError(f"Negative length {length} in token data")
    data = stream.read(length)
    if len(data) != length:
        raise ValueError("Unexpected end of token data")
    return data


def write_token(out: IO[bytes], token: Token):
    """Write `token` in `Token.write` layout."""
    _write_bytes(out, token.identifier)
    _write_bytes(out, token.password)
    _write_bytes(out, token.kind.encode("utf-8"))
    _write_bytes(out, token.service.encode("utf-8"))


def read_token(stream: IO[bytes]) -> Token:
    """Read a token in `Token.write` layout."""
    return Token(
        identifier=_read_bytes(stream),
        password=_read_bytes(stream),
        kind=_read_bytes(stream).decode("utf-8"),
        service=_read_bytes(stream).decode("utf-8"),
    )


def write_token_storage(out: IO[bytes], tokens: dict[str, Token]):
    """Write `tokens` (alias -> token) as a Hadoop token storage stream."""
    out.write(TOKEN_STORAGE_MAGIC)
    out.write(TOKEN_STORAGE_VERSION.to_bytes(1, "big"))
    write_vlong(out, len(tokens))
    for alias, token in tokens.items():
        _write_bytes(out, alias.encode("utf-8"))
        write_token(out, token)
    # no secret keys
    write_vlong(out, 0)


def read_token_storage(stream: IO[bytes]) -> dict[str, Token]:
    """Read the tokens of a Hadoop token storage stream."""
    if stream.read(len(TOKEN_STORAGE_MAGIC)) != TOKEN_STORAGE_MAGIC:
        raise ValueError("Bad header found in token storage")
    _version = stream.read(1)
    if not _version or _version[0] != TOKEN_STORAGE_VERSION:
        raise ValueError(f"Unsupported token storage version {_version!r}")

    tokens = {}
    for _ in range(read_vlong(stream)):
        alias = _read_bytes(stream).decode("utf-8")
        tokens[alias] = read_token(stream)
    return tokens
