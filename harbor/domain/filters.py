"""
Container filtering and sorting helpers for list views.
"""

from __future__ import annotations

from typing import Literal

from harbor.domain.types import Container, ContainerState

SortField = Literal["name", "state", "created", "image"]
SortOrder = Literal["asc", "desc"]

_SORT_KEYS = {
    "name": lambda c: c.name.lower(),
    "state": lambda c: c.state.value,
    "created": lambda c: c.created,
    "image": lambda c: c.image.lower(),
}


def filter_by_search(containers: list[Container], term: str) -> list[Container]:
    """Case-insensitive match on container name or id."""
    term = term.strip().lower()
    if not term:
        return list(containers)
    return [c for c in containers if term in c.name.lower() or term in c.id.lower()]


def filter_by_state(containers: list[Container], state: ContainerState | str | None) -> list[Container]:
    if state is None or state == "all":
        return list(containers)
    state = ContainerState(state)
    return [c for c in containers if c.state == state]


def sort_containers(containers: list[Container], field: SortField = "name", order: SortOrder = "asc") -> list[Container]:
    if field not in _SORT_KEYS:
        raise ValueError(f"Unknown sort field: {field}")
    return sorted(containers, key=_SORT_KEYS[field], reverse=order == "desc")


def apply_filters_and_sort(
    containers: list[Container],
    search: str = "",
    state: ContainerState | str | None = None,
    field: SortField = "name",
    order: SortOrder = "asc",
) -> list[Container]:
    filtered = filter_by_search(containers, search)
    filtered = filter_by_state(filtered, state)
    return sort_containers(filtered, field, order)
