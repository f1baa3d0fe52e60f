"""Tests for offline token decoding."""

from __future__ import annotations

import base64

from link_resolver.codec import (
    Decoded,
    DecodeMismatch,
    TokenCodec,
    b64decode_token,
    extract_encoded_part,
    read_varint,
)
from link_resolver.core.types import Token


TECHCRUNCH_TOKEN = (
    "https://news.google.com/rss/articles/"
    "CBMiSGh0dHBzOi8vdGVjaGNydW5jaC5jb20vMjAyMi8xMC8yNy9uZXcteW9yay1wb3N0LWhhY2tlZC1vZmZlbnNpdmUtdHdlZXRzL9IBAA"
    "?oc=5"
)
TECHCRUNCH_URL = "https://techcrunch.com/2022/10/27/new-york-post-hacked-offensive-tweets/"


def _field(url: str) -> bytes:
    data = url.encode("utf-8")
    return bytes([len(data)]) + data


def _token(payload: bytes, prefix: str = "https://news.google.com/rss/articles/") -> str:
    encoded = base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")
    return f"{prefix}{encoded}?oc=5"


def test_decodes_known_short_article_token():
    codec = TokenCodec()
    assert codec.decode(TECHCRUNCH_TOKEN) == TECHCRUNCH_URL

    outcome = codec.inspect(TECHCRUNCH_TOKEN)
    assert isinstance(outcome, Decoded)
    assert outcome.signature == "article-v1"


def test_decode_is_idempotent_and_accepts_parsed_tokens():
    codec = TokenCodec()
    token = Token.parse(TECHCRUNCH_TOKEN, origin="feed")
    first = codec.decode(token)
    second = codec.decode(token)
    assert first == second == codec.decode(TECHCRUNCH_TOKEN) == TECHCRUNCH_URL


def test_read_family_uses_same_payload():
    encoded = extract_encoded_part(TECHCRUNCH_TOKEN)
    token = f"https://news.google.com/read/{encoded}"
    assert TokenCodec().decode(token) == TECHCRUNCH_URL


def test_bare_url_field_signature():
    payload = b"\x22" + _field("https://example.com/story") + b"\xd2\x01"
    outcome = TokenCodec().inspect(_token(payload))
    assert outcome == Decoded(url="https://example.com/story", signature="url-field")


def test_prefers_canonical_over_amp_mirror():
    canonical = "https://example.com/news/item"
    amp = "https://www.google.com/amp/s/example.com/news/item"

    amp_first = b"\x08\x13\x22" + _field(amp) + b"\xd2\x01" + _field(canonical)
    canonical_first = b"\x08\x13\x22" + _field(canonical) + b"\xd2\x01" + _field(amp)

    codec = TokenCodec()
    assert codec.decode(_token(amp_first)) == canonical
    assert codec.decode(_token(canonical_first)) == canonical


def test_missing_terminator_is_mismatch():
    payload = b"\x08\x13\x22" + _field("https://example.com/story") + b"\x00\x00"
    outcome = TokenCodec().inspect(_token(payload))
    assert outcome == DecodeMismatch("unknown signature")


def test_unknown_header_is_mismatch():
    payload = b"\x10\x01" + _field("https://example.com/story") + b"\xd2\x01"
    assert TokenCodec().decode(_token(payload)) is None


def test_non_url_field_is_not_forced():
    payload = b"\x08\x13\x22" + _field("ftp://example.com/story") + b"\xd2\x01"
    assert TokenCodec().decode(_token(payload)) is None


def test_length_running_past_payload_is_mismatch():
    payload = b"\x08\x13\x22\x7f" + b"https://example.com"
    assert TokenCodec().decode(_token(payload)) is None


def test_garbage_base64_is_absent():
    codec = TokenCodec()
    assert codec.decode("https://news.google.com/rss/articles/!!!notbase64***") is None
    assert codec.decode("https://news.google.com/rss/articles/?oc=5") is None


def test_long_extended_token_is_absent():
    prefix = "https://news.google.com/rss/articles/AU_yqL"
    token = prefix + "x" * (600 - len(prefix))
    assert len(token) == 600

    outcome = TokenCodec().inspect(token)
    assert isinstance(outcome, DecodeMismatch)
    assert TokenCodec().decode(token) is None


def test_story_clusters_and_foreign_urls_are_rejected():
    codec = TokenCodec()
    story = codec.inspect("https://news.google.com/stories/CAAqNggKIjBDQklTSGpvSmMzUnZjbmt0TXpZd1NoRUtEd2pIdnA?hl=en-US")
    assert story == DecodeMismatch("unsupported family")

    encoded = extract_encoded_part(TECHCRUNCH_TOKEN)
    assert codec.decode(f"https://example.com/articles/{encoded}") is None


def test_extract_encoded_part_strips_query_and_fragment():
    assert extract_encoded_part("https://news.google.com/articles/ABC-_x?hl=en#top") == "ABC-_x"
    assert extract_encoded_part("https://example.com/other/ABC") is None


def test_b64decode_token_handles_urlsafe_alphabet_without_padding():
    raw = bytes([0xFB, 0xFF, 0xBF])
    encoded = base64.urlsafe_b64encode(raw).decode("ascii")
    assert "-" in encoded or "_" in encoded
    assert b64decode_token(encoded.rstrip("=")) == raw


def test_read_varint():
    assert read_varint(b"\x48", 0) == (72, 1)
    assert read_varint(b"\xac\x02", 0) == (300, 2)
    assert read_varint(b"\x80", 0) is None


def test_url_field_with_trailing_newline_is_rejected():
    payload = b"\x22" + _field("https://example.com/story\n") + b"\xd2\x01"
    token = _token(payload)

    assert TokenCodec().inspect(token) == DecodeMismatch("unknown signature")
    assert TokenCodec().decode(token) is None


def test_encoded_part_comes_from_path_of_matching_family():
    encoded = extract_encoded_part(TECHCRUNCH_TOKEN)
    token = f"https://news.google.com/read/{encoded}?continue=https://news.google.com/articles/CBMiXYZ"

    assert extract_encoded_part(token) == encoded
    assert extract_encoded_part(token, "read") == encoded
    assert extract_encoded_part(token, "articles") is None
    assert TokenCodec().decode(token) == TECHCRUNCH_URL
