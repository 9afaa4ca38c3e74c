"""
Model alias registry.

Maps client-facing model names to a backend and an upstream model id.
Built once at startup from each backend's model listing, then frozen.
"""

import logging
import re
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Tuple

from .backend_client import BackendClient
from .models import AliasEntry, Backend

logger = logging.getLogger(__name__)

# One alias per backend, used when discovery fails or finds nothing
DEFAULT_ALIASES: Tuple[AliasEntry, ...] = (
    AliasEntry("gpt4", Backend.OPENAI, "gpt-4"),
    AliasEntry("gemini", Backend.GEMINI, "gemini-2.0-flash"),
    AliasEntry("llama", Backend.OLLAMA, "llama2"),
)

# Convenience aliases: (alias, backend, family pattern, preferred base model).
# The base model wins when listed, otherwise the shortest matching name.
FAMILY_ALIASES: Tuple[Tuple[str, Backend, Pattern, str], ...] = (
    ("gpt4", Backend.OPENAI, re.compile(r"^gpt-4"), "gpt-4"),
    ("gpt3", Backend.OPENAI, re.compile(r"^gpt-3\.5"), "gpt-3.5-turbo"),
    ("gemini", Backend.GEMINI, re.compile(r"^gemini"), "gemini-2.0-flash"),
    ("llama", Backend.OLLAMA, re.compile(r"llama"), "llama2"),
)

VENDOR_PREFIXES = ("models/", "openai/", "google/", "library/")


def short_name(model_id: str) -> str:
    """Alias key for an upstream id: lowercased, vendor prefix and ``:latest`` dropped."""
    name = model_id.strip().lower()
    for prefix in VENDOR_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    if name.endswith(":latest"):
        name = name[:-len(":latest")]
    return name


class ModelRegistry:
    """
    Frozen alias table.

    Resolution is a case-insensitive prefix match in registration order:
    the first alias that prefixes the requested name wins, so an alias
    registered before a longer alias sharing its prefix shadows it.
    """

    def __init__(self, entries: Iterable[AliasEntry] = ()):
        table: Dict[str, AliasEntry] = {}
        for entry in entries:
            # Re-registering an alias keeps its position but takes the new target
            table[entry.alias.lower()] = entry
        self._table: Mapping[str, AliasEntry] = MappingProxyType(table)

    def __len__(self) -> int:
        return len(self._table)

    def entries(self) -> List[AliasEntry]:
        """Aliases in registration order."""
        return list(self._table.values())

    def lookup(self, requested: str) -> Optional[AliasEntry]:
        """First alias that is a prefix of the lowercased name, if any."""
        name = (requested or "").lower()
        for alias, entry in self._table.items():
            if name.startswith(alias):
                return entry
        return None

    def resolve(self, requested: str) -> AliasEntry:
        """Like lookup, but unknown names go to the OpenAI backend verbatim."""
        entry = self.lookup(requested)
        if entry is not None:
            return entry
        return AliasEntry(alias=None, backend=Backend.OPENAI, upstream_model=requested)

    @classmethod
    def defaults(cls, adapters: Mapping[Backend, BackendClient]) -> "ModelRegistry":
        """Default table restricted to configured backends."""
        return cls(e for e in DEFAULT_ALIASES if e.backend in adapters)

    @classmethod
    async def discover(cls, adapters: Mapping[Backend, BackendClient]) -> "ModelRegistry":
        """
        Build the registry from every adapter's model listing.

        A failing adapter is logged and skipped. If discovery fails as a
        whole, or registers nothing, the default table is used instead.
        """
        try:
            entries = await _collect(adapters)
        except Exception as e:
            logger.error(f"Model discovery failed, using default aliases: {e}")
            return cls.defaults(adapters)

        if not entries:
            logger.warning("No models discovered, using default aliases")
            return cls.defaults(adapters)

        registry = cls(entries)
        logger.info(f"Model discovery complete: {len(registry)} aliases registered")
        return registry


async def _collect(adapters: Mapping[Backend, BackendClient]) -> List[AliasEntry]:
    discovered: List[AliasEntry] = []
    upstream_ids: Dict[Backend, List[str]] = {}

    for backend, adapter in adapters.items():
        try:
            response = await adapter.list_models()
            ids = [m["id"] for m in response.body.get("data", []) if m.get("id")]
        except Exception as e:
            logger.warning(f"Failed to list models from {backend.value}: {e}")
            continue

        upstream_ids[backend] = ids
        # Longer names first so e.g. gpt-4o is not shadowed by gpt-4
        for model_id in sorted(ids, key=lambda i: len(short_name(i)), reverse=True):
            discovered.append(AliasEntry(short_name(model_id), backend, model_id))
        logger.info(f"Discovered {len(ids)} models from {backend.value}")

    taken = {e.alias for e in discovered}
    for alias, backend, pattern, base in FAMILY_ALIASES:
        if alias in taken:
            continue
        model_id = family_member(upstream_ids.get(backend, []), pattern, base)
        if model_id is not None:
            discovered.append(AliasEntry(alias, backend, model_id))
            taken.add(alias)

    return discovered


def family_member(ids: List[str], pattern: Pattern, base: str) -> Optional[str]:
    """The listed ``base`` model if present, else the shortest id in the family."""
    members = [i for i in ids if pattern.search(short_name(i))]
    for model_id in members:
        if short_name(model_id) == base:
            return model_id
    if not members:
        return None
    return min(members, key=lambda i: len(short_name(i)))
