"""Best-effort file extension inference for uploaded book files."""

import mimetypes
import re
from pathlib import PurePosixPath
from typing import Optional

# Bytes read from the head of an upload before deciding on its extension
PROBE_SIZE = 4096

FALLBACK_EXTENSION = "bin"

FILE_TYPE_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,32}")

# (offset, signature, extension), checked in order
SIGNATURES: list[tuple[int, bytes, str]] = [
    (0, b"%PDF-", "pdf"),
    (60, b"BOOKMOBI", "mobi"),
    (0, b"AT&TFORM", "djvu"),
    (0, b"{\\rtf", "rtf"),
    (0, b"\x89PNG\r\n\x1a\n", "png"),
    (0, b"\xff\xd8\xff", "jpg"),
    (0, b"GIF87a", "gif"),
    (0, b"GIF89a", "gif"),
]

EPUB_MIMETYPE_ENTRY = b"mimetypeapplication/epub+zip"
ZIP_MAGIC = b"PK\x03\x04"

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "epub": "application/epub+zip",
    "mobi": "application/x-mobipocket-ebook",
    "fb2": "application/x-fictionbook+xml",
    "djvu": "image/vnd.djvu",
    "txt": "text/plain",
}


def is_valid_file_type(file_type: str) -> bool:
    """Check that a file type token is safe to use as a file name extension."""
    return FILE_TYPE_PATTERN.fullmatch(file_type) is not None


def _sniff(head: bytes) -> Optional[str]:
    for offset, signature, extension in SIGNATURES:
        if head[offset : offset + len(signature)] == signature:
            return extension

    if head.startswith(ZIP_MAGIC):
        # EPUB requires an uncompressed "mimetype" entry first in the archive
        if head[30 : 30 + len(EPUB_MIMETYPE_ENTRY)] == EPUB_MIMETYPE_ENTRY:
            return "epub"
        return "zip"

    if b"<FictionBook" in head[:1024]:
        return "fb2"

    return None


def _looks_like_text(head: bytes) -> bool:
    if not head or b"\x00" in head:
        return False
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        # a multi-byte character cut off at the probe boundary is still text
        return e.start >= len(head) - 3 and e.reason == "unexpected end of data"
    return True


def _filename_extension(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lstrip(".").lower()
    return suffix if suffix and is_valid_file_type(suffix) else None


def _content_type_extension(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in ("", "application/octet-stream"):
        return None
    for extension, known in MEDIA_TYPES.items():
        if known == media_type:
            return extension
    guessed = mimetypes.guess_extension(media_type)
    if not guessed:
        return None
    # some registered extensions are multi-part or symbolic (".gpkg.tar", ".c++")
    extension = guessed.lstrip(".").lower()
    return extension if is_valid_file_type(extension) else None


def infer_extension(head: bytes, filename: Optional[str] = None, content_type: Optional[str] = None) -> str:
    """
    Infer the extension an uploaded file is stored under.

    Content signatures win over anything the client asserts. Plain text keeps
    the client's extension when it has a sane one, so markdown or fb2 sources
    are not all flattened to "txt".

    Args:
        head: First bytes of the upload (up to PROBE_SIZE)
        filename: Client-supplied file name, if any
        content_type: Client-supplied media type, if any

    Returns:
        Lowercase extension without the leading dot
    """
    sniffed = _sniff(head)
    if sniffed:
        return sniffed

    if _looks_like_text(head):
        return _filename_extension(filename) or "txt"

    return _content_type_extension(content_type) or _filename_extension(filename) or FALLBACK_EXTENSION


def media_type_for(file_type: str) -> str:
    """Media type to serve a stored file with."""
    known = MEDIA_TYPES.get(file_type.lower())
    if known:
        return known
    guessed, _ = mimetypes.guess_type(f"file.{file_type}")
    return guessed or "application/octet-stream"
