"""Document and collection path checks.

A path is a slash-separated list of segments; leading, trailing and doubled
slashes are ignored. Odd segment counts name collections, even counts name
documents.
"""

from typing import List


def segments(path: str) -> List[str]:
    return [part for part in path.strip("/").split("/") if part]


def is_document_path(path: str) -> bool:
    parts = segments(path)
    return bool(parts) and len(parts) % 2 == 0


def is_collection_path(path: str) -> bool:
    return len(segments(path)) % 2 == 1
