"""
Structural traversal of state documents.

A state document is a recursive structure of keyed mappings, ordered
sequences and scalars. Every component that needs to look inside a
document (the differ, the cloner, the checksum routine, merge path access)
goes through the helpers in this module so they all agree on what a
document is.
"""

from collections.abc import Mapping
from typing import Any, Callable, Literal


Kind = Literal["mapping", "sequence", "scalar"]

SCALAR_TYPES = (type(None), bool, int, float, str)

PATH_SEPARATOR = "."

# Marker for "no value at this path"
MISSING: Any = type("Missing", (), {"__repr__": lambda self: "MISSING"})()


def kind_of(value: Any) -> Kind:
    """Classify a value as a mapping, a sequence or a scalar."""
    if isinstance(value, Mapping):
        return "mapping"
    if isinstance(value, (list, tuple)):
        return "sequence"
    return "scalar"


def walk(
    value: Any,
    visit_scalar: Callable[[Any, tuple[str, ...]], Any],
    path: tuple[str, ...] = (),
) -> Any:
    """
    Rebuild a document bottom-up.

    Mappings become ``dict``, sequences become ``list`` and every scalar is
    replaced by ``visit_scalar(scalar, path)``.

    Args:
        value: Document (or sub-document) to walk.
        visit_scalar: Called for each scalar leaf with its key path.
        path: Key path of ``value`` from the document root.

    Returns:
        The rebuilt structure.
    """
    kind = kind_of(value)
    if kind == "mapping":
        rebuilt = {}
        for key, child in value.items():
            if not isinstance(key, str):
                raise TypeError(
                    f"Mapping keys must be strings, got {type(key).__name__} at '{join_path(path)}'"
                )
            rebuilt[key] = walk(child, visit_scalar, path + (key,))
        return rebuilt
    if kind == "sequence":
        return [
            walk(child, visit_scalar, path + (str(index),))
            for index, child in enumerate(value)
        ]
    return visit_scalar(value, path)


def _check_scalar(value: Any, path: tuple[str, ...]) -> Any:
    if not isinstance(value, SCALAR_TYPES):
        raise TypeError(
            f"Unsupported value of type {type(value).__name__} at '{join_path(path)}'"
        )
    return value


def deep_clone(document: Any) -> Any:
    """Return an independent copy of a document, rejecting non-document values."""
    return walk(document, _check_scalar)


def join_path(keys: tuple[str, ...] | list[str]) -> str:
    return PATH_SEPARATOR.join(keys)


def split_path(path: str) -> list[str]:
    return path.split(PATH_SEPARATOR) if path else []


def _index(key: str) -> int:
    try:
        return int(key)
    except ValueError:
        raise KeyError(key) from None


def get_at_path(document: Any, path: str, default: Any = MISSING) -> Any:
    """Read the value at a dotted path, or ``default`` when any step is absent."""
    current = document
    for key in split_path(path):
        kind = kind_of(current)
        if kind == "mapping":
            if key not in current:
                return default
            current = current[key]
        elif kind == "sequence":
            try:
                index = _index(key)
            except KeyError:
                return default
            if not 0 <= index < len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def set_at_path(document: Any, path: str, value: Any) -> Any:
    """
    Write ``value`` at a dotted path in place.

    Missing intermediate containers are created as mappings. Writing to a
    sequence index at or past its end appends.

    Returns:
        The document root (a new root when ``path`` is empty).
    """
    keys = split_path(path)
    if not keys:
        return value

    current = document
    for key in keys[:-1]:
        kind = kind_of(current)
        if kind == "mapping":
            if kind_of(current.get(key)) == "scalar":
                current[key] = {}
            current = current[key]
        elif kind == "sequence":
            index = _index(key)
            if index >= len(current):
                current.append({})
                index = len(current) - 1
            elif kind_of(current[index]) == "scalar":
                current[index] = {}
            current = current[index]
        else:
            raise TypeError(f"Cannot descend into scalar at '{path}'")

    last = keys[-1]
    if kind_of(current) == "sequence":
        index = _index(last)
        # Past the end: the other side of a merge may have shortened the list
        if index >= len(current):
            current.append(value)
        else:
            current[index] = value
    else:
        current[last] = value
    return document


def delete_at_path(document: Any, path: str) -> Any:
    """Remove the value at a dotted path in place; absent paths are ignored."""
    keys = split_path(path)
    if not keys:
        return None

    parent = get_at_path(document, join_path(keys[:-1]))
    last = keys[-1]
    kind = kind_of(parent)
    if kind == "mapping":
        parent.pop(last, None)
    elif kind == "sequence":
        index = _index(last)
        if 0 <= index < len(parent):
            parent.pop(index)
    return document
