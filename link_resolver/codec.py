"""
Offline decoder for aggregator article tokens.

Short article tokens are URL-safe base64 over a small binary record:
a header signature, a varint length, the publisher URL, then the
terminator bytes 0xD2 0x01 (optionally followed by an AMP mirror URL).
Decoding is a tagged-variant parser over a closed, versioned set of known
header signatures. Anything else is reported as a DecodeMismatch, never as
a best-guess slice of the payload.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
import re
from urllib.parse import urlsplit

from .core.types import FAMILY_PREFIXES, Token
from .core.urls import is_amp_mirror


_NON_ALPHABET_RE = re.compile(r"[^A-Za-z0-9\-_]")
_URL_BYTES_RE = re.compile(rb"https?://[\x21-\x7e\x80-\xff]+")

TERMINATOR = b"\xd2\x01"
DECODABLE_FAMILIES = ("articles", "read")


@dataclass(frozen=True)
class PayloadSignature:
    """A known leading byte pattern of a decodable payload.

    Attributes:
        name: Stable identifier reported with every successful decode
        header: Bytes preceding the varint length of the URL field
        terminator: Bytes that must directly follow the URL field
    """

    name: str
    header: bytes
    terminator: bytes = TERMINATOR


# Ordered; add new shapes here instead of loosening the match.
SIGNATURES: tuple[PayloadSignature, ...] = (
    PayloadSignature(name="article-v1", header=b"\x08\x13\x22"),
    PayloadSignature(name="url-field", header=b"\x22"),
)


@dataclass(frozen=True)
class Decoded:
    url: str
    signature: str


@dataclass(frozen=True)
class DecodeMismatch:
    """Expected outcome for tokens whose payload shape is not known."""

    reason: str


DecodeOutcome = Decoded | DecodeMismatch


class TokenCodec:
    """Pure decoder for the known short-token shapes."""

    def __init__(self, signatures: tuple[PayloadSignature, ...] = SIGNATURES):
        self.signatures = signatures

    def decode(self, token: Token | str) -> str | None:
        """Return the embedded publisher URL, or None when the shape is unknown."""
        outcome = self.inspect(token)
        if isinstance(outcome, Decoded):
            return outcome.url
        return None

    def inspect(self, token: Token | str) -> DecodeOutcome:
        """Decode a token and report which variant was matched.

        Args:
            token: A Token or a raw aggregator link

        Returns:
            Decoded with the URL and signature name, or DecodeMismatch
        """
        if isinstance(token, str):
            token = Token.parse(token)
        if token.family not in DECODABLE_FAMILIES:
            return DecodeMismatch("unsupported family")

        encoded = extract_encoded_part(token.raw, token.family)
        if not encoded:
            return DecodeMismatch("empty payload")
        payload = b64decode_token(encoded)
        if payload is None:
            return DecodeMismatch("invalid base64")

        for signature in self.signatures:
            outcome = _match_signature(payload, signature)
            if outcome is not None:
                return outcome
        return DecodeMismatch("unknown signature")


def extract_encoded_part(raw: str, family: str | None = None) -> str | None:
    """Return the path segment after the token family's prefix.

    Only the path is searched, so query strings and fragments never leak
    into the payload. Without ``family`` every decodable family is tried.
    """
    try:
        path = urlsplit(raw).path
    except ValueError:
        return None
    families = (family,) if family else DECODABLE_FAMILIES
    for name in families:
        for prefix in FAMILY_PREFIXES.get(name, ()):
            if path.startswith(prefix):
                return path[len(prefix):].rstrip("/")
    return None


def b64decode_token(encoded: str) -> bytes | None:
    """Decode URL-safe base64 after stripping foreign characters and padding."""
    cleaned = _NON_ALPHABET_RE.sub("", encoded)
    cleaned = cleaned.replace("-", "+").replace("_", "/")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned)
    except (binascii.Error, ValueError):
        return None


def read_varint(data: bytes, offset: int) -> tuple[int, int] | None:
    """Read a base-128 varint.

    Returns:
        (value, next_offset), or None when the varint runs past the data
    """
    value = 0
    shift = 0
    while offset < len(data) and shift < 35:
        byte = data[offset]
        value |= (byte & 0x7F) << shift
        offset += 1
        if not byte & 0x80:
            return value, offset
        shift += 7
    return None


def _match_signature(payload: bytes, signature: PayloadSignature) -> Decoded | None:
    if not payload.startswith(signature.header):
        return None
    primary = _read_url_field(payload, len(signature.header))
    if primary is None:
        return None
    url, end = primary
    if payload[end:end + len(signature.terminator)] != signature.terminator:
        return None

    candidates = [url]
    # An AMP mirror may follow the terminator as a second length-prefixed field
    secondary = _read_url_field(payload, end + len(signature.terminator))
    if secondary is not None:
        candidates.append(secondary[0])
    return Decoded(url=_prefer_canonical(candidates), signature=signature.name)


def _read_url_field(payload: bytes, offset: int) -> tuple[str, int] | None:
    header = read_varint(payload, offset)
    if header is None:
        return None
    length, start = header
    end = start + length
    if length == 0 or end > len(payload):
        return None
    field = payload[start:end]
    if not _URL_BYTES_RE.fullmatch(field):
        return None
    try:
        return field.decode("utf-8"), end
    except UnicodeDecodeError:
        return None


def _prefer_canonical(candidates: list[str]) -> str:
    for url in candidates:
        if not is_amp_mirror(url):
            return url
    return candidates[0]
