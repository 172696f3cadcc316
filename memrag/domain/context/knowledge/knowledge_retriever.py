from collections import Counter
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional, Protocol, Set, Tuple, runtime_checkable

import structlog
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore

logger = structlog.get_logger(__name__)


@runtime_checkable
class KnowledgeRetriever(Protocol):
    """Similarity search over the knowledge base"""

    async def search(self, query: str, k: int) -> List[Document]:
        ...


class VectorKnowledgeRetriever:
    """Knowledge base held in an in-memory vector store, persisted as JSON"""

    def __init__(self, embeddings: Embeddings, persistence_path: Optional[str] = None):
        self.embeddings = embeddings
        self.persistence_path = persistence_path
        self._store: Optional[InMemoryVectorStore] = None
        self._documents: List[Document] = []

    @property
    def document_count(self) -> int:
        return len(self._documents)

    def has_documents(self) -> bool:
        return bool(self._documents)

    async def add_documents(self, documents: List[Document]) -> None:
        if not documents:
            return

        if self._store is None:
            self._store = InMemoryVectorStore(self.embeddings)
        ids = await self._store.aadd_documents(documents)
        self._documents.extend(doc.model_copy(update={"id": doc_id}) for doc, doc_id in zip(documents, ids))
        logger.info("Documents indexed", added=len(documents), total=len(self._documents))

    def source_files(self) -> Set[str]:
        return {doc.metadata.get("source_file", "unknown") for doc in self._documents}

    def remove_documents_by_source(self, sources: Iterable[str]) -> int:
        """Drop every chunk that came from one of ``sources``; returns how many were removed"""

        sources = set(sources)
        doomed = [doc for doc in self._documents if doc.metadata.get("source_file") in sources]
        if not doomed or self._store is None:
            return 0

        self._store.delete([doc.id for doc in doomed])
        self._documents = [doc for doc in self._documents if doc.metadata.get("source_file") not in sources]
        logger.info("Documents removed", sources=sorted(sources), removed=len(doomed), total=len(self._documents))
        return len(doomed)

    async def search(self, query: str, k: int = 3) -> List[Document]:
        """Top ``k`` chunks for ``query``; empty when there is no index or the search fails"""

        if self._store is None:
            return []

        try:
            return await self._store.asimilarity_search(query, k=k)
        except Exception as e:
            logger.warning("Knowledge search failed", error=str(e))
            return []

    async def search_with_scores(self, query: str, k: int = 3) -> List[Tuple[Document, float]]:
        if self._store is None:
            return []

        try:
            return await self._store.asimilarity_search_with_score(query, k=k)
        except Exception as e:
            logger.warning("Knowledge search failed", error=str(e))
            return []

    def stats(self) -> Dict[str, Any]:
        """Chunk counts per source file"""

        chunks_per_file = Counter(
            doc.metadata.get("source_file", "unknown") for doc in self._documents
        )
        return {
            "total_chunks": len(self._documents),
            "source_files": len(chunks_per_file),
            "top_files": [
                {"name": name, "chunks": chunks}
                for name, chunks in chunks_per_file.most_common(10)
            ],
        }

    def save(self) -> None:
        if self._store is None or not self.persistence_path:
            return

        try:
            Path(self.persistence_path).parent.mkdir(parents=True, exist_ok=True)
            self._store.dump(self.persistence_path)
        except OSError as e:
            logger.warning("Could not persist knowledge index", path=self.persistence_path, error=str(e))

    def load(self) -> bool:
        """Restore a previously saved index; False when there is nothing usable"""

        if not self.persistence_path or not Path(self.persistence_path).exists():
            return False

        try:
            store = InMemoryVectorStore.load(self.persistence_path, self.embeddings)
        except Exception as e:
            logger.warning("Could not load knowledge index", path=self.persistence_path, error=str(e))
            return False

        documents = [
            Document(id=doc_id, page_content=record["text"], metadata=record.get("metadata", {}))
            for doc_id, record in store.store.items()
        ]
        if not documents:
            return False

        self._store = store
        self._documents = documents
        logger.info("Knowledge index loaded", documents=len(documents))
        return True
