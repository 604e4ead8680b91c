"""
Deterministic identifiers for tracked entities.

An id is ``<kind>_<token>`` where *token* is the base64url encoding
(padding stripped) of the entity's natural key parts.  Each part is
escaped before joining so that ``("a:b", "c")`` and ``("a", "b:c")``
never produce the same token; the encoding is reversible, so two
different keys can never collide.

Re-deriving an id from the same key parts always returns the same
value, which is what makes ``save_*`` an upsert.
"""

import base64
from typing import List, Tuple

PROJECT = "project"
ENDPOINT = "endpoint"
FUNCTION = "function"

_SEPARATOR = ":"


def _escape(part: str) -> str:
    return part.replace("\\", "\\\\").replace(_SEPARATOR, "\\" + _SEPARATOR)


def _split_escaped(joined: str) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    chars = iter(joined)
    for ch in chars:
        if ch == "\\":
            current.append(next(chars, ""))
        elif ch == _SEPARATOR:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def derive_id(kind: str, *key_parts: str) -> str:
    """Return the deterministic id for *kind* and its natural key parts."""
    joined = _SEPARATOR.join(_escape(str(p)) for p in key_parts)
    token = base64.urlsafe_b64encode(joined.encode("utf-8")).decode("ascii").rstrip("=")
    return f"{kind}_{token}"


def decode_id(entity_id: str) -> Tuple[str, List[str]]:
    """Reverse :func:`derive_id`; return ``(kind, key_parts)``.

    Raises ``ValueError`` when *entity_id* was not produced by
    :func:`derive_id`.
    """
    kind, sep, token = entity_id.partition("_")
    if not sep or not token:
        raise ValueError(f"Not a derived id: {entity_id!r}")
    padded = token + "=" * (-len(token) % 4)
    try:
        joined = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (ValueError, UnicodeError) as exc:
        raise ValueError(f"Not a derived id: {entity_id!r}") from exc
    return kind, _split_escaped(joined)


def project_id(name: str, path: str) -> str:
    return derive_id(PROJECT, name, path)


def api_endpoint_id(project_id: str, method: str, path: str) -> str:
    return derive_id(ENDPOINT, project_id, method, path)


def function_id(project_id: str, name: str, implementation_path: str) -> str:
    return derive_id(FUNCTION, project_id, name, implementation_path)
