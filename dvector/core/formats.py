"""
Supported document formats for ingestion. Only formats readable as UTF-8 text are accepted;
binary formats need an extraction step outside this package.
"""

from pathlib import Path

SUPPORTED_FORMATS = {
    "TEXT": [".txt", ".md"],
    "DATA": [".json", ".csv"],
    "WEB": [".html", ".htm", ".xml"],
}

ALL_SUPPORTED_EXTENSIONS = [ext for group in SUPPORTED_FORMATS.values() for ext in group]

MIME_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".xml": "application/xml",
}


def get_file_extension(filename: str) -> str:
    return Path(filename).suffix.lower()


def is_supported_file(filename: str) -> bool:
    return get_file_extension(filename) in ALL_SUPPORTED_EXTENSIONS


def get_mime_type(filename: str) -> str:
    """MIME type for a supported filename, text/plain otherwise."""
    return MIME_TYPES.get(get_file_extension(filename), "text/plain")
