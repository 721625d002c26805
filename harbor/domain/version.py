"""
Version parsing and minimum-version checks for runtime executables.
"""

import re

from harbor.config.settings import MIN_DOCKER_VERSION, MIN_PODMAN_VERSION
from harbor.domain.types import RuntimeKind, Version

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_version(text: str) -> Version:
    """
    Parse the first semantic version found in engine output.

    Handles "Docker version 24.0.7, build afdd53b", "podman version 4.8.0"
    and bare "24.0.7".

    Raises:
        ValueError: If the text contains no major.minor.patch triple
    """
    match = _VERSION_RE.search(text)
    if not match:
        raise ValueError(f"Could not parse version from: {text}")
    major, minor, patch = (int(g) for g in match.groups())
    return Version(major, minor, patch, f"{major}.{minor}.{patch}")


def meets_minimum(kind: RuntimeKind, version: Version) -> bool:
    """Docker needs 20.10 or newer, Podman 3.0 or newer."""
    minimum = MIN_DOCKER_VERSION if kind == RuntimeKind.DOCKER else MIN_PODMAN_VERSION
    return version.as_tuple() >= minimum
