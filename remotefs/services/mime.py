from __future__ import annotations

import mimetypes

SNIFF_LENGTH = 512
DEFAULT_TYPE = 'application/octet-stream'

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b'%PDF-', 'application/pdf'),
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'\xff\xd8\xff', 'image/jpeg'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
    (b'BM', 'image/bmp'),
    (b'\x00\x00\x01\x00', 'image/x-icon'),
    (b'PK\x03\x04', 'application/zip'),
    (b'\x1f\x8b\x08', 'application/x-gzip'),
    (b'Rar!\x1a\x07', 'application/x-rar-compressed'),
    (b'7z\xbc\xaf\x27\x1c', 'application/x-7z-compressed'),
    (b'\x7fELF', 'application/x-executable'),
    (b'OggS\x00', 'application/ogg'),
    (b'ID3', 'audio/mpeg'),
    (b'\x00asm', 'application/wasm'),
    (b'%!PS-Adobe-', 'application/postscript'),
)

_HTML_PREFIXES = (b'<!doctype html', b'<html', b'<head', b'<body', b'<script', b'<title', b'<div', b'<p')

# Bytes that never appear in text (C0 controls other than whitespace/escape).
_BINARY_BYTES = frozenset(range(0x00, 0x09)) | {0x0B, 0x0E, 0x0F} | frozenset(range(0x10, 0x1B)) | frozenset(range(0x1C, 0x20))


def guess_by_extension(name: str) -> str | None:
    mime_type, _ = mimetypes.guess_type(name, strict=False)
    return mime_type


def _is_binary(sample: bytes) -> bool:
    return any(byte in _BINARY_BYTES for byte in sample)


def sniff(sample: bytes) -> str:
    """Infer a content type from the leading bytes of a file."""
    data = sample[:SNIFF_LENGTH]
    for bom, charset in ((b'\xef\xbb\xbf', 'utf-8'), (b'\xfe\xff', 'utf-16be'), (b'\xff\xfe', 'utf-16le')):
        if data.startswith(bom):
            return f'text/plain; charset={charset}'

    for signature, mime_type in _SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    if data[:4] == b'RIFF' and data[8:12] == b'WAVE':
        return 'audio/wave'
    if data[4:8] == b'ftyp':
        return 'video/mp4'

    stripped = data.lstrip(b' \t\r\n\x0c').lower()
    if stripped.startswith(b'<?xml'):
        return 'text/xml; charset=utf-8'
    if any(stripped.startswith(prefix) for prefix in _HTML_PREFIXES):
        return 'text/html; charset=utf-8'

    if not data or not _is_binary(data):
        return 'text/plain; charset=utf-8'
    return DEFAULT_TYPE
