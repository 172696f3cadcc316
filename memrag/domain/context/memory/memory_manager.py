from typing import Dict, Any, List, Optional, Tuple

import structlog

from memrag.domain.context.memory.importance_oracle import ImportanceOracle
from memrag.domain.context.memory.memory_store import MemoryStore
from memrag.domain.context.memory.vector_memory_store import ArchiveVectorIndex
from memrag.domain.models.memory import MemoryEntry, MemoryStats, MemoryType

logger = structlog.get_logger(__name__)

# Used when the scoring call fails: the content already passed the personal-info filter
DEFAULT_IMPORTANCE = 7.0

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count; no tokenizer round-trip"""
    if not text:
        return 0
    return max(1, (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN)


class MemoryManager:
    """Owns the active/archive lifecycle of personal memories.

    New memories pass through the oracle's extraction filter and importance
    scoring, then land as active entries. Whenever the active set outgrows
    ``max_active_memories`` or its token estimate passes
    ``max_context_length * consolidation_trigger``, low-importance entries are
    archived first and the oldest remaining ones backfill until the count fits.
    Archived entries are only reachable through semantic recall.
    """

    def __init__(
        self,
        store: MemoryStore,
        oracle: ImportanceOracle,
        archive_index: ArchiveVectorIndex,
        max_active_memories: int = 10,
        importance_threshold: float = 5.0,
        max_context_length: int = 4000,
        consolidation_trigger: float = 0.8,
    ):
        self.store = store
        self.oracle = oracle
        self.archive_index = archive_index
        self.max_active_memories = max_active_memories
        self.importance_threshold = importance_threshold
        self.max_context_length = max_context_length
        self.consolidation_trigger = consolidation_trigger

    async def initialize(self) -> None:
        """Index whatever the store already archived in a previous session"""
        await self.archive_index.rebuild(self.store.list_archived())

    async def record_interaction(
        self,
        user_text: str,
        assistant_text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MemoryEntry]:
        """Remember the personal content of an exchange, if there is any.

        Returns None when the oracle finds nothing personal (or cannot be
        reached); nothing is stored in that case.
        """

        try:
            personal_info = await self.oracle.extract_personal_information(user_text)
        except Exception as e:
            logger.warning("Personal information extraction failed", error=str(e))
            return None

        if not personal_info:
            return None

        try:
            importance = await self.oracle.score_importance(personal_info)
        except Exception as e:
            logger.warning("Importance scoring failed, using default", error=str(e))
            importance = DEFAULT_IMPORTANCE

        memory = MemoryEntry(
            content=personal_info,
            importance_score=importance,
            memory_type=MemoryType.PREFERENCE,
            is_archived=False,
            metadata=dict(metadata or {}),
        )
        memory.id = self.store.insert(memory)
        logger.info("Memory stored", memory_id=memory.id, importance=memory.importance_score)

        await self._check_and_consolidate()

        return memory

    async def get_context(self, query: str, max_count: int = 5) -> Tuple[List[MemoryEntry], List[MemoryEntry]]:
        """Recent active memories plus archived memories related to ``query``"""

        active = self.store.list_active(limit=max_count)
        recalled = await self._recall_from_archive(query, max_count // 2)
        return active, recalled

    def get_stats(self) -> MemoryStats:
        active_count = self.store.count(archived=False)
        archived_count = self.store.count(archived=True)
        active_tokens = self._active_token_estimate(self.store.list_active())

        return MemoryStats(
            active_count=active_count,
            archived_count=archived_count,
            total_count=active_count + archived_count,
            active_token_estimate=active_tokens,
            context_utilization=active_tokens / self.max_context_length if self.max_context_length else 0.0,
        )

    def format_for_prompt(self, active: List[MemoryEntry], recalled: List[MemoryEntry]) -> str:
        """Render memories for a prompt: recalled first, then active oldest-first"""

        parts = []

        if recalled:
            parts.append("=== Recalled Past Context ===")
            for memory in recalled:
                parts.append(f"[Recalled] {memory.content}")

        if active:
            parts.append("=== Recent Context ===")
            # Storage order is newest-first
            for memory in reversed(active):
                parts.append(memory.content)

        return "\n".join(parts)

    def list_memories(self) -> Tuple[List[MemoryEntry], List[MemoryEntry]]:
        return self.store.list_active(), self.store.list_archived()

    def clear(self) -> None:
        """Drop every memory, active and archived"""
        self.store.clear_all()
        self.archive_index.clear()

    async def _check_and_consolidate(self) -> None:
        active = self.store.list_active()

        if len(active) > self.max_active_memories:
            await self._consolidate(active)
            return

        if self._active_token_estimate(active) > self.max_context_length * self.consolidation_trigger:
            await self._consolidate(active)

    async def _consolidate(self, active: List[MemoryEntry]) -> None:
        if not active:
            return

        to_archive = [m for m in active if m.importance_score < self.importance_threshold]
        archive_ids = {m.id for m in to_archive}

        remaining = [m for m in active if m.id not in archive_ids]
        if len(remaining) > self.max_active_memories:
            oldest_first = sorted(remaining, key=lambda m: (m.timestamp, m.id))
            overflow = len(remaining) - self.max_active_memories
            to_archive.extend(oldest_first[:overflow])

        if not to_archive:
            return

        self.store.archive(m.id for m in to_archive)
        await self.archive_index.rebuild(self.store.list_archived())
        logger.info("Memories archived", count=len(to_archive))

    async def _recall_from_archive(self, query: str, k: int) -> List[MemoryEntry]:
        if k <= 0 or not self.archive_index.is_ready:
            return []

        memory_ids = await self.archive_index.search(query, k)
        if not memory_ids:
            return []

        archived = {m.id: m for m in self.store.list_archived()}
        return [archived[memory_id] for memory_id in memory_ids if memory_id in archived]

    @staticmethod
    def _active_token_estimate(active: List[MemoryEntry]) -> int:
        return sum(estimate_tokens(m.content) for m in active)
