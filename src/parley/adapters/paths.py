"""Field-path interpreter for walking decoded JSON values.

A path such as ``"choices.0.delta.content"`` is parsed once into the token
tuple ``("choices", 0, "delta", "content")``. String tokens index mappings,
integer tokens index lists. Resolution never raises: any mismatch yields
``None``.
"""

from __future__ import annotations

from functools import cache
from typing import Any, Union

PathToken = Union[str, int]
Path = tuple[PathToken, ...]


@cache
def parse_path(path: str) -> Path:
    """Split a dot-separated path into tokens; all-digit segments become indices."""
    if not path:
        return ()
    tokens: list[PathToken] = []
    for segment in path.split("."):
        if not segment:
            continue
        tokens.append(int(segment) if segment.isdigit() else segment)
    return tuple(tokens)


def resolve(value: Any, path: str | Path) -> Any:
    """Resolve *path* against *value*, returning ``None`` when absent."""
    tokens = parse_path(path) if isinstance(path, str) else path
    current = value
    for token in tokens:
        if isinstance(token, int):
            if isinstance(current, list) and -len(current) <= token < len(current):
                current = current[token]
                continue
            if isinstance(current, dict) and str(token) in current:
                current = current[str(token)]
                continue
            return None
        if isinstance(current, dict):
            if token not in current:
                return None
            current = current[token]
            continue
        return None
    return current


def resolve_in_chunk(chunk: Any, path: str | Path) -> Any:
    """Resolve *path* at the chunk root, then under ``choices[0]``.

    OpenAI-compatible streams nest deltas under ``choices[0]`` while
    configured paths are usually written relative to the choice.
    """
    found = resolve(chunk, path)
    if found is not None:
        return found
    if isinstance(chunk, dict):
        choices = chunk.get("choices")
        if isinstance(choices, list) and choices:
            return resolve(choices[0], path)
    return None


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """Swap a leading path segment, e.g. ``delta.`` for ``message.``."""
    if path.startswith(old_prefix):
        return new_prefix + path[len(old_prefix) :]
    return path
