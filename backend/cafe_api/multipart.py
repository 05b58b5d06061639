# Overview: multipart/form-data decoder working on raw request bytes.

"""
Splits a multipart body on its boundary and returns the named parts.

File parts (those with a filename) keep their bytes untouched, so binary
uploads such as .xlsx survive intact. Text parts are decoded and stripped.
Malformed sections are skipped; callers check for the parts they need.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from flask import request

from .errors import ValidationError


_BOUNDARY_PARAM = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
_NAME_PARAM = re.compile(rb'(?<![A-Za-z0-9_-])name="([^"]*)"', re.IGNORECASE)
_FILENAME_PARAM = re.compile(rb'filename="([^"]*)"', re.IGNORECASE)
_CONTENT_TYPE_HEADER = re.compile(rb'^content-type:\s*(.+)$', re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class MultipartPart:
    name: str
    filename: str | None
    content: bytes | str
    content_type: str | None = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


def boundary_from_content_type(content_type: str | None) -> str | None:
    if not content_type or "multipart/form-data" not in content_type.lower():
        return None
    match = _BOUNDARY_PARAM.search(content_type)
    if not match:
        return None
    return match.group(1) or match.group(2)


def _find_all(haystack: bytes, needle: bytes) -> list[int]:
    offsets = []
    start = haystack.find(needle)
    while start != -1:
        offsets.append(start)
        start = haystack.find(needle, start + len(needle))
    return offsets


def _split_section(section: bytes) -> tuple[bytes, bytes] | None:
    """Header block and body of one section, or None without a blank line."""
    crlf = section.find(b"\r\n\r\n")
    lf = section.find(b"\n\n")
    if crlf == -1 and lf == -1:
        return None
    if crlf != -1 and (lf == -1 or crlf <= lf):
        headers, body = section[:crlf], section[crlf + 4:]
    else:
        headers, body = section[:lf], section[lf + 2:]

    # Line terminator that precedes the next boundary belongs to the framing
    if body.endswith(b"\r\n"):
        body = body[:-2]
    elif body.endswith(b"\n"):
        body = body[:-1]
    return headers, body


def _decode_header_value(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def parse_multipart(body: bytes, boundary: str) -> dict[str, MultipartPart]:
    """
    Decode a multipart/form-data body into parts keyed by field name.

    - CRLF and bare-LF line endings are both accepted
    - the closing "--boundary--" never yields a part
    - sections without a header/body separator or without name= are skipped
    - a repeated field name keeps the last occurrence
    """
    if not boundary:
        raise ValueError("boundary is required")

    delimiter = b"--" + boundary.encode("latin-1")
    offsets = _find_all(body, delimiter)
    parts: dict[str, MultipartPart] = {}

    for start, end in zip(offsets, offsets[1:]):
        section = body[start + len(delimiter):end]
        # Drop the line break that follows the delimiter line
        if section.startswith(b"\r\n"):
            section = section[2:]
        elif section.startswith(b"\n"):
            section = section[1:]

        split = _split_section(section)
        if split is None:
            continue
        headers, content = split

        disposition = None
        for line in headers.splitlines():
            if line.lower().startswith(b"content-disposition:"):
                disposition = line
                break
        if disposition is None:
            continue

        name_match = _NAME_PARAM.search(disposition)
        if not name_match:
            continue
        name = _decode_header_value(name_match.group(1))

        filename_match = _FILENAME_PARAM.search(disposition)
        type_match = _CONTENT_TYPE_HEADER.search(headers)
        content_type = _decode_header_value(type_match.group(1)).strip() if type_match else None

        if filename_match:
            parts[name] = MultipartPart(
                name=name,
                filename=_decode_header_value(filename_match.group(1)),
                content=content,
                content_type=content_type,
            )
        else:
            parts[name] = MultipartPart(
                name=name,
                filename=None,
                content=content.decode("utf-8", errors="replace").strip(),
                content_type=content_type,
            )

    return parts


def read_upload(file_field: str = "file") -> tuple[MultipartPart, dict[str, MultipartPart]]:
    """
    Decode the current request's multipart body.

    Returns the file part plus every part; a missing boundary, missing file
    part or empty file is a 400.
    """
    boundary = boundary_from_content_type(request.headers.get("Content-Type"))
    if not boundary:
        raise ValidationError("Content-Type must be multipart/form-data with a boundary")

    parts = parse_multipart(request.get_data(cache=True), boundary)
    upload = parts.get(file_field)
    if upload is None or not upload.is_file:
        raise ValidationError(f"No file uploaded (expected form field '{file_field}')")
    if not upload.content:
        raise ValidationError("Uploaded file is empty")
    return upload, parts


def form_value(parts: dict[str, MultipartPart], name: str) -> str | None:
    part = parts.get(name)
    if part is None or part.is_file:
        return None
    return part.content or None
