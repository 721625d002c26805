"""
Preference stores for the runtime selection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Protocol

import yaml

from harbor.domain.types import RuntimeKind, RuntimePreferences

logger = logging.getLogger("harbor")


class PreferenceStore(Protocol):
    """Protocol for the collaborator that remembers the user's runtime choice."""

    async def get_preferences(self) -> RuntimePreferences:
        """
        Read the stored preferences.

        Returns:
            RuntimePreferences (empty when nothing was stored)
        """
        ...

    async def persist_selection(self, runtime_id: str) -> None:
        """
        Remember the selected runtime.

        Args:
            runtime_id: Id of the runtime that was selected
        """
        ...


class MemoryPreferenceStore:
    """Preference store kept in process memory."""

    def __init__(self, preferences: RuntimePreferences | None = None) -> None:
        self._preferences = preferences or RuntimePreferences()

    async def get_preferences(self) -> RuntimePreferences:
        return self._preferences

    async def persist_selection(self, runtime_id: str) -> None:
        self._preferences = replace(self._preferences, selected_runtime_id=runtime_id)


class YamlPreferenceStore:
    """Preference store backed by a small YAML file."""

    def __init__(self, path: str | Path, preferred_kind: RuntimeKind | None = RuntimeKind.DOCKER) -> None:
        self.path = Path(path).expanduser()
        self.preferred_kind = preferred_kind

    async def get_preferences(self) -> RuntimePreferences:
        return await asyncio.to_thread(self._read)

    async def persist_selection(self, runtime_id: str) -> None:
        await asyncio.to_thread(self._write_selection, runtime_id)

    def _read(self) -> RuntimePreferences:
        if not self.path.exists():
            return RuntimePreferences(preferred_kind=self.preferred_kind)

        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or {}

        kind = data.get("preferred_kind")
        return RuntimePreferences(
            selected_runtime_id=data.get("selected_runtime_id"),
            preferred_kind=RuntimeKind(kind) if kind else self.preferred_kind,
        )

    def _write_selection(self, runtime_id: str) -> None:
        data: dict = {}
        if self.path.exists():
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}

        data["selected_runtime_id"] = runtime_id
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False)
        logger.debug(f"Persisted runtime selection {runtime_id} to {self.path}")
