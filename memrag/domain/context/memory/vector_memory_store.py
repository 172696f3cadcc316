from typing import List, Optional

import structlog
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore

from memrag.domain.models.memory import MemoryEntry

logger = structlog.get_logger(__name__)


class ArchiveVectorIndex:
    """Semantic index over archived memories.

    A cache derived from the memory store: every rebuild replaces the whole
    index, and a failed rebuild leaves no index at all.
    """

    def __init__(self, embeddings: Embeddings):
        self.embeddings = embeddings
        self._store: Optional[InMemoryVectorStore] = None

    @property
    def is_ready(self) -> bool:
        return self._store is not None

    async def rebuild(self, archived: List[MemoryEntry]) -> None:
        """Replace the index with one built from ``archived``"""

        self._store = None
        if not archived:
            return

        documents = [
            Document(
                page_content=memory.content,
                metadata={**memory.metadata, "memory_id": memory.id},
            )
            for memory in archived
        ]

        try:
            store = InMemoryVectorStore(self.embeddings)
            await store.aadd_documents(documents)
        except Exception as e:
            logger.warning("Archive index rebuild failed", error=str(e), archived=len(archived))
            return

        self._store = store
        logger.debug("Archive index rebuilt", archived=len(archived))

    async def search(self, query: str, k: int) -> List[int]:
        """Ids of the ``k`` archived memories closest to ``query``, best first"""

        if self._store is None or k <= 0:
            return []

        try:
            results = await self._store.asimilarity_search(query, k=k)
        except Exception as e:
            logger.warning("Archive recall failed", error=str(e))
            return []

        return [
            doc.metadata["memory_id"]
            for doc in results
            if doc.metadata.get("memory_id") is not None
        ]

    def clear(self) -> None:
        self._store = None
