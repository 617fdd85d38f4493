import logging
from typing import List

from pydantic import TypeAdapter

from .artifacts import HISTORY_KEY, KeyValueStore
from .models import ErrorHistoryEntry, Patch

logger = logging.getLogger(__name__)

_HISTORY_ADAPTER = TypeAdapter(List[Patch])


class PatchNotFound(KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No patch named '{self.name}' in history"


class RevisionStore:
    """Newest-first History of patches, rewritten in full after each mutation."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._patches: List[Patch] = self._load()

    def _load(self) -> List[Patch]:
        raw = self.kv.get(HISTORY_KEY, [])
        patches = _HISTORY_ADAPTER.validate_python(raw)
        logger.debug("Loaded %d patches from history", len(patches))
        return patches

    def _commit(self, patches: List[Patch]) -> None:
        # Memory only changes once the write has succeeded.
        self.kv.set(HISTORY_KEY, _HISTORY_ADAPTER.dump_python(patches, mode="json", by_alias=True))
        self._patches = patches

    def _with_error(self, name: str, entry: ErrorHistoryEntry) -> tuple[List[Patch], Patch]:
        patches = list(self._patches)
        for idx, patch in enumerate(patches):
            if patch.name == name:
                patches[idx] = patch.model_copy(update={"error_history": [entry, *patch.error_history]})
                return patches, patches[idx]
        raise PatchNotFound(name)

    def __len__(self) -> int:
        return len(self._patches)

    def list(self) -> List[Patch]:
        return list(self._patches)

    def latest(self) -> Patch | None:
        return self._patches[0] if self._patches else None

    def get(self, name: str) -> Patch:
        for patch in self._patches:
            if patch.name == name:
                return patch
        raise PatchNotFound(name)

    def search(self, query: str | None) -> List[Patch]:
        if not query or not query.strip():
            return self.list()
        needle = query.lower()
        return [
            patch
            for patch in self._patches
            if needle in patch.description.lower() or needle in patch.content.lower()
        ]

    def add(self, patch: Patch) -> Patch:
        self._commit([patch, *self._patches])
        logger.info("Stored %s (version %s)", patch.name, patch.version)
        return patch

    def append_error(self, name: str, entry: ErrorHistoryEntry) -> Patch:
        patches, updated = self._with_error(name, entry)
        self._commit(patches)
        logger.info("Recorded error against %s (%d entries)", name, len(updated.error_history))
        return updated

    def record_regeneration(self, name: str, entry: ErrorHistoryEntry, patch: Patch) -> Patch:
        """Append ``entry`` to ``name`` and prepend the regenerated ``patch`` in one write."""
        patches, updated = self._with_error(name, entry)
        self._commit([patch, *patches])
        logger.info("Stored %s (version %s) as a repair of %s", patch.name, patch.version, name)
        return updated

    def clear(self) -> None:
        self.kv.remove(HISTORY_KEY)
        self._patches = []
        logger.info("Cleared patch history")
