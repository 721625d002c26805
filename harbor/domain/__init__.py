"""Domain module containing runtime state and selection logic."""

from harbor.domain.errors import BackendFailure, HarborError, NoActiveRuntime, UnknownRuntime
from harbor.domain.preferences import MemoryPreferenceStore, PreferenceStore, YamlPreferenceStore
from harbor.domain.registry import RegistryStore
from harbor.domain.selector import RuntimeSelector, choose_runtime

__all__ = [
    "BackendFailure",
    "HarborError",
    "NoActiveRuntime",
    "UnknownRuntime",
    "MemoryPreferenceStore",
    "PreferenceStore",
    "YamlPreferenceStore",
    "RegistryStore",
    "RuntimeSelector",
    "choose_runtime",
]
