"""
File naming, MIME types and size formatting helpers
"""

import re
from pathlib import PurePosixPath
from typing import Optional


MIME_TYPES = {
    "pdf": "application/pdf",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "txt": "text/plain",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
}

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

_SIZE_PATTERN = re.compile(r"^\s*([\d.]+)\s*([KMGT]?B)?\s*$", re.IGNORECASE)
_STORAGE_NAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_\-\s]")
_DOWNLOAD_NAME_UNSAFE = re.compile(r'[<>:"/\\|?*]')


def file_extension(name: Optional[str]) -> str:
    """Lowercased extension without the dot, '' when there is none"""
    if not name:
        return ""
    suffix = PurePosixPath(name).suffix
    return suffix[1:].lower() if suffix else ""


def get_mime_type(file_name: str) -> str:
    return MIME_TYPES.get(file_extension(file_name), "application/octet-stream")


def sanitize_storage_name(name: str) -> str:
    """Characters outside [a-zA-Z0-9_-\\s] become '_' (object keys)"""
    return _STORAGE_NAME_UNSAFE.sub("_", name or "")


def sanitize_download_filename(file_name: Optional[str]) -> str:
    """Filename safe for Content-Disposition and local saves"""
    if not file_name:
        return "download"
    cleaned = _DOWNLOAD_NAME_UNSAFE.sub("_", file_name)
    cleaned = re.sub(r"\s+", "_", cleaned)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    return cleaned.strip() or "download"


def format_size(num_bytes: float) -> str:
    """1536 -> '1.5 KB' (base 1024, up to TB, at most two decimals)"""
    if not num_bytes or num_bytes <= 0:
        return "0 B"
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[i]}"


def format_megabytes(num_bytes: int) -> str:
    """Size as stored on file resources: 'X.XX MB'"""
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def parse_size(size) -> int:
    """Inverse of the stored size strings; unknown formats count as 0"""
    if size is None:
        return 0
    if isinstance(size, (int, float)):
        return int(size)
    match = _SIZE_PATTERN.match(str(size))
    if not match:
        return 0
    value = float(match.group(1))
    unit = (match.group(2) or "B").upper()
    return int(value * (1024 ** SIZE_UNITS.index(unit)))


def format_file_count(count: int) -> str:
    if count == 0:
        return "Aucun fichier"
    if count == 1:
        return "1 fichier"
    return f"{count} fichiers"
