"""Memoized extraction of element sub-lists rooted at a path."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from fhirtree.core.types import ElementDefinition

logger = logging.getLogger(__name__)


def rebase(path: str, base: str) -> str:
    """Strip the segments of ``base`` from ``path``, keeping the last one.

    >>> rebase("Consent.provision.actor.role", "Consent.provision")
    'provision.actor.role'
    """
    drop = base.count(".")
    return ".".join(path.split(".")[drop:])


@dataclass
class _SliceGroup:
    root: Sequence[ElementDefinition]
    slices: dict[tuple[str, str], tuple[ElementDefinition, ...]] = field(default_factory=dict)


class SchemaElementIndex:
    """Slices element lists into the children of one element.

    The same slice is requested for every sibling and array item during a
    decode, so slices are memoized by ``(parent_path, path)``. ``parent_path``
    names the list being sliced (a schema name or the absolute path of a
    backbone element) and must be unique per distinct element list.

    Memoized slices are grouped by schema, the first segment of
    ``parent_path``. Each group remembers the element list of the schema it
    was built from; a reloaded schema comes with a new list and starts a new
    group, so slices of an outdated schema are never served.
    """

    def __init__(self) -> None:
        self._groups: dict[str, _SliceGroup] = {}

    def get(
        self,
        elements: Sequence[ElementDefinition],
        parent_path: str,
        path: str,
        root: Sequence[ElementDefinition] | None = None,
    ) -> tuple[ElementDefinition, ...]:
        """Return the elements strictly nested under ``path``, rebased.

        Args:
            elements: The element list to slice.
            parent_path: Identifies ``elements`` in the memo key.
            path: Path of the element whose children are wanted.
            root: Elements of the schema ``elements`` was sliced from.
                Defaults to ``elements`` itself.

        Returns:
            Child elements with paths relative to ``path``'s last segment.
        """
        root = elements if root is None else root
        schema_name = parent_path.split(".", 1)[0]
        group = self._groups.get(schema_name)
        if group is None or group.root is not root:
            if group is not None:
                logger.debug("Dropping %d slices of reloaded %s", len(group.slices), schema_name)
            group = _SliceGroup(root)
            self._groups[schema_name] = group

        key = (parent_path, path)
        cached = group.slices.get(key)
        if cached is not None:
            return cached

        prefix = path + "."
        result = tuple(
            e.with_path(rebase(e.path, path)) for e in elements if e.path.startswith(prefix)
        )
        group.slices[key] = result
        logger.debug("Indexed %d elements under %s in %s", len(result), path, parent_path)
        return result

    def clear(self) -> None:
        self._groups.clear()

    def __len__(self) -> int:
        return sum(len(g.slices) for g in self._groups.values())
