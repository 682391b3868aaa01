"""Selection of the resources a provider is asked to fetch."""

from __future__ import annotations

from typing import Collection, Iterable

WILDCARD = "*"


class ResourceSelectionError(ValueError):
    """Raised when a configured resource list cannot be resolved.

    ``details`` explains to the user how to correct the configuration.
    """

    def __init__(self, message: str, details: str = "") -> None:
        super().__init__(message)
        self.details = details


def match_resource_glob(pattern: str, all_resources: Collection[str]) -> list[str]:
    """Return the known resources matching ``pattern``, which must end with ``.*``.

    A pattern without any wildcard matches nothing; exact matches are not handled here.
    """
    wild_pos = pattern.find(".*")
    if wild_pos > 0:
        if wild_pos != len(pattern) - 2:
            raise ResourceSelectionError(
                "invalid wildcard syntax", "resource match should end with `.*`"
            )
        prefix = pattern[: wild_pos + 1]  # keep the "." so "c1." does not match "c1a."
        return sorted(name for name in all_resources if name.startswith(prefix))
    if wild_pos == 0 or WILDCARD in pattern:
        raise ResourceSelectionError(
            "invalid wildcard syntax",
            "you can only use `*` or `resource.*` or full resource name",
        )
    return []


def glob_resources(
    requested: Iterable[str], allow_wild: bool, all_resources: Collection[str]
) -> list[str]:
    """Expand a requested resource list into a sorted list of known resource names.

    A lone ``*`` expands to every resource unless ``allow_wild`` is set, in which case
    any ``*`` is rejected. Empty, duplicate, unknown and malformed names are rejected.
    """
    requested = list(requested)
    if allow_wild:
        if WILDCARD in requested:
            raise ResourceSelectionError(
                "wildcard resource can only be in the requested resources list",
                "you can only use * in the resources part of the configuration",
            )
    elif requested == [WILDCARD]:
        requested = list(all_resources)

    result: list[str] = []
    seen: set[str] = set()
    for name in requested:
        if not name:
            raise ResourceSelectionError(
                "invalid resource", "empty resource names are not allowed"
            )
        if name in seen:
            raise ResourceSelectionError(
                f'resource "{name}" is duplicate', "configuration has duplicate resources"
            )
        seen.add(name)

        if name in all_resources:
            result.append(name)
            continue
        if name == WILDCARD:
            raise ResourceSelectionError(
                "wildcard resource must be the only one in the list",
                "you can only use * or a list of resources in configuration, but not both",
            )
        matches = match_resource_glob(name, all_resources)
        if not matches:
            raise ResourceSelectionError(
                f'resource "{name}" does not exist',
                "configuration refers to a non-existing resource. Maybe you recently "
                "downgraded the provider but kept the config, or a typo perhaps?",
            )
        result.extend(matches)

    return sorted(set(result))


def normalize_resources(
    resources: Iterable[str], skip: Iterable[str], all_resources: Collection[str]
) -> list[str]:
    """Resolve the requested resources and remove the skipped ones."""
    wanted = glob_resources(resources, False, all_resources)
    skipped = set(glob_resources(skip or (), True, all_resources))
    return [name for name in wanted if name not in skipped]