from typing import Iterable, Mapping


def _sort_labels(labels: Mapping[str, str]) -> list:
    return [f"{key}{labels[key]}" for key in sorted(labels)]


def metadata_fingerprint(description: str, column_descriptions: Iterable[str], labels: Mapping[str, str]) -> str:
    """Canonical string for view metadata.

    Description, then each column description in order, then labels as
    ``key+value`` sorted lexicographically. The same function is used for the
    declared and the live side so the two can be compared byte-for-byte.
    """
    parts = [description or ""]
    parts.extend(text or "" for text in column_descriptions)
    parts.extend(_sort_labels(labels or {}))
    return "".join(parts)
