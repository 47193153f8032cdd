"""
Content previews handed to the analysis engine.

Source-like files are sent as text, anything else as a hex dump of the
header bytes.
"""
from typing import Iterable, Tuple

TEXT_EXTENSIONS = (".c", ".h", ".cpp", ".hpp", ".arxml", ".xml", ".txt", ".json")

# 8000 base64 characters of the uploaded bytes
TEXT_PREVIEW_BYTES = 6000
HEX_PREVIEW_BYTES = 500
REPOSITORY_FILE_CHARS = 3000
REPOSITORY_PREVIEW_CHARS = 60000


def is_text_file(file_name: str) -> bool:
    return (file_name or "").lower().endswith(TEXT_EXTENSIONS)


def hex_dump(data: bytes, limit: int = HEX_PREVIEW_BYTES) -> str:
    return " ".join(f"{byte:02x}" for byte in data[:limit])


def binary_preview(file_name: str, data: bytes) -> Tuple[str, bool]:
    """Return (preview, is_text) for an uploaded file."""
    if is_text_file(file_name):
        return data[:TEXT_PREVIEW_BYTES].decode("utf-8", errors="replace"), True
    return hex_dump(data), False


def repository_preview(files: Iterable) -> str:
    """Concatenate fetched files, each headed by its path and truncated."""
    sections = [
        f"--- {f.path} ---\n{f.content[:REPOSITORY_FILE_CHARS]}\n"
        for f in files
    ]
    return "\n\n".join(sections)[:REPOSITORY_PREVIEW_CHARS]
