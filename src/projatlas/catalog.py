"""Projection catalog loading and lookup."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import yaml

from .models import ProjectionDescriptor

DEFAULT_CATALOG_PATH = Path(__file__).with_name("projections.yaml")


class UnknownProjectionError(LookupError):
    """Raised when a projection id is not present in the catalog."""

    def __init__(self, projection_id: str) -> None:
        super().__init__(f"Unknown projection: {projection_id!r}")
        self.projection_id = projection_id


class ProjectionCatalog:
    """Ordered, read-only table of projection descriptors."""

    def __init__(self, descriptors: Iterable[ProjectionDescriptor]) -> None:
        ordered: list[ProjectionDescriptor] = []
        index: dict[str, ProjectionDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in index:
                raise ValueError(f"Duplicate projection id '{descriptor.id}'")
            index[descriptor.id] = descriptor
            ordered.append(descriptor)
        self._ordered = tuple(ordered)
        self._index = index

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, projection_id: object) -> bool:
        return projection_id in self._index

    def find(self, projection_id: str) -> ProjectionDescriptor | None:
        return self._index.get(projection_id)

    def require(self, projection_id: str) -> ProjectionDescriptor:
        descriptor = self._index.get(projection_id)
        if descriptor is None:
            raise UnknownProjectionError(projection_id)
        return descriptor

    def all(self) -> tuple[ProjectionDescriptor, ...]:
        return self._ordered

    def menu_entries(self) -> list[dict[str, str]]:
        """Menu rows in display order."""
        return [
            {
                "id": descriptor.id,
                "display_name": descriptor.display_name,
                "shape_hint": descriptor.shape_hint,
            }
            for descriptor in self._ordered
        ]


def load_projection_catalog(path: Path) -> ProjectionCatalog:
    """Load and validate a projection table from YAML."""
    if not path.exists():
        raise FileNotFoundError(f"Projection catalog not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"Expected list in {path}")

    descriptors: list[ProjectionDescriptor] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping at index {idx} in {path}")
        try:
            descriptors.append(ProjectionDescriptor.from_mapping(item))
        except ValueError as exc:
            raise ValueError(f"{path} entry {idx}: {exc}") from exc
    try:
        return ProjectionCatalog(descriptors)
    except ValueError as exc:
        raise ValueError(f"{exc} in {path}") from exc


def default_catalog() -> ProjectionCatalog:
    return load_projection_catalog(DEFAULT_CATALOG_PATH)


def format_catalog_lines(catalog: ProjectionCatalog) -> Sequence[str]:
    width = max((len(item.id) for item in catalog.all()), default=0)
    lines: list[str] = []
    for descriptor in catalog.all():
        lines.append(
            f"{descriptor.shape_hint} {descriptor.id:<{width}}  "
            f"{descriptor.display_name} ({descriptor.family.value})"
        )
    return lines

