"""Fold dot-delimited keys into nested mappings."""
from typing import Any, Dict, Iterable, List, Set, Tuple

from translation_manager.errors import InvalidArgumentError, SchemaConflictError

PATH_SEPARATOR = '.'


def split_key_path(dot_path: str) -> List[str]:
    """
    Split a dot-path such as ``common.buttons.save`` into its segments.

    Raises:
        InvalidArgumentError: If the path is empty or any segment is empty.
    """
    if not isinstance(dot_path, str) or not dot_path:
        raise InvalidArgumentError("Translation key must be a non-empty string.")
    segments = dot_path.split(PATH_SEPARATOR)
    if any(not segment for segment in segments):
        raise InvalidArgumentError(f"Malformed key '{dot_path}': dot-separated segments must not be empty.")
    return segments


def paths_collide(first: str, second: str) -> bool:
    """True when one key is a strict dot-prefix of the other (``a`` and ``a.b``)."""
    return first.startswith(second + PATH_SEPARATOR) or second.startswith(first + PATH_SEPARATOR)


class PathMerger:
    """
    Accumulates ``(dot_path, value)`` pairs into one nested tree.

    A path that would turn an existing leaf into a branch, or overwrite a branch
    with a leaf, raises ``SchemaConflictError``. Merging the exact same path twice
    keeps the value of the last pair.
    """

    def __init__(self):
        self.tree: Dict[str, Any] = {}
        self._leaf_paths: Set[Tuple[str, ...]] = set()
        self._branch_paths: Set[Tuple[str, ...]] = set()

    def merge(self, dot_path: str, value: Any) -> None:
        try:
            segments = split_key_path(dot_path)
        except InvalidArgumentError as exc:
            raise SchemaConflictError(exc.message) from exc

        path = tuple(segments)
        for depth in range(1, len(segments)):
            if path[:depth] in self._leaf_paths:
                raise SchemaConflictError(
                    f"Key '{dot_path}' nests under '{PATH_SEPARATOR.join(path[:depth])}', which already holds a value."
                )
        if path in self._branch_paths:
            raise SchemaConflictError(
                f"Key '{dot_path}' would overwrite a group of nested keys with a single value."
            )

        node = self.tree
        for depth, segment in enumerate(segments[:-1], start=1):
            node = node.setdefault(segment, {})
            self._branch_paths.add(path[:depth])
        node[segments[-1]] = value
        self._leaf_paths.add(path)


def merge_paths(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """
    Merge ``(dot_path, value)`` pairs into a nested mapping.

    >>> merge_paths([("a.b", 1), ("a.c", 2)])
    {'a': {'b': 1, 'c': 2}}
    """
    merger = PathMerger()
    for dot_path, value in pairs:
        merger.merge(dot_path, value)
    return merger.tree
