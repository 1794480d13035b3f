"""Format-preserving TOML document access.

Uses tomlkit so that manifests keep their comments, key order, quoting
and whitespace when a single value is replaced. Values are addressed by
field path: a tuple of table keys and, for arrays, integer indices,
e.g. ``("project", "dependencies", 2)`` or ``("dependencies", "core",
"version")``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import tomlkit
from tomlkit.items import String

from .models import FieldPath


def parse_document(text: str) -> tomlkit.TOMLDocument:
    """Parse TOML text into a document that preserves formatting."""
    return tomlkit.parse(text)


def dump_document(doc: tomlkit.TOMLDocument) -> str:
    """Serialize a document back to text, byte-identical where untouched."""
    return tomlkit.dumps(doc)


def format_path(path: FieldPath) -> str:
    """Render a field path for error messages: ``project.dependencies[2]``."""
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out


def get_path(doc: Any, path: FieldPath) -> Any:
    """Return the value at ``path``.

    Raises:
        KeyError: If any segment of the path does not exist.
    """
    node = doc
    for part in path:
        if isinstance(part, int):
            if not isinstance(node, list) or not -len(node) <= part < len(node):
                raise KeyError(format_path(path))
            node = node[part]
        else:
            if not isinstance(node, Mapping) or part not in node:
                raise KeyError(format_path(path))
            node = node[part]
    return node


def has_path(doc: Any, path: FieldPath) -> bool:
    try:
        get_path(doc, path)
    except KeyError:
        return False
    return True


def set_path(doc: Any, path: FieldPath, value: str) -> None:
    """Replace the string at ``path`` in place.

    The replacement keeps the original string's quoting style (basic or
    literal, single or multi-line); the surrounding whitespace, commas and
    comments are untouched.

    Raises:
        KeyError: If the path (or its parent) does not exist.
    """
    if not path:
        raise KeyError("<root>")
    parent = get_path(doc, path[:-1])
    old = get_path(doc, path)
    new: Any = value
    if isinstance(old, String):
        new = tomlkit.string(
            value,
            literal=old.type.is_literal(),
            multiline=old.type.is_multiline(),
        )
    parent[path[-1]] = new


def get_table(doc: Any, *keys: str) -> Mapping[str, Any]:
    """Return the nested table at ``keys``, or an empty mapping."""
    node: Any = doc
    for key in keys:
        if not isinstance(node, Mapping):
            return {}
        node = node.get(key, {})
    return node if isinstance(node, Mapping) else {}
