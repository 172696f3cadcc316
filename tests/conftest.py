"""Shared fixtures: scripted generation, deterministic embeddings, in-memory stores"""

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from memrag.domain.context.knowledge.knowledge_retriever import VectorKnowledgeRetriever
from memrag.domain.context.memory.importance_oracle import ImportanceOracle
from memrag.domain.context.memory.memory_manager import MemoryManager
from memrag.domain.context.memory.memory_store import MemoryStore
from memrag.domain.context.memory.vector_memory_store import ArchiveVectorIndex

Reply = Union[str, Exception]
Messages = List[Dict[str, str]]


class FakeGenerationService:
    """Generation double: replays scripted replies or asks a handler.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        responses: Optional[Sequence[Reply]] = None,
        handler: Optional[Callable[[Messages], Reply]] = None,
    ):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[Messages] = []

    async def complete(self, messages: Messages) -> str:
        self.calls.append(messages)
        if self.handler is not None:
            reply = self.handler(messages)
        else:
            reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def prompts(self) -> List[str]:
        return [call[-1]["content"] for call in self.calls]


def oracle_handler(facts: Dict[str, Tuple[str, Reply]]) -> Callable[[Messages], Reply]:
    """Oracle double keyed by trigger phrases.

    ``facts`` maps a phrase found in the user's message to the summary the
    extraction call returns and the reply the scoring call returns for it.
    Messages without a trigger are reported as non-personal.
    """

    def handle(messages: Messages) -> Reply:
        prompt = messages[-1]["content"]

        if prompt.startswith("Rate from 1 to 10"):
            for summary, score in facts.values():
                if summary in prompt:
                    return score
            return "5"

        message = prompt.split('Message: "', 1)[-1].split('"\n', 1)[0]
        for trigger, (summary, _) in facts.items():
            if trigger in message:
                return summary
        return "NONE"

    return handle


class KeywordEmbeddings(Embeddings):
    """Bag-of-words vectors over a fixed vocabulary, plus a constant bias term"""

    def __init__(self, vocabulary: Sequence[str]):
        self.vocabulary = [term.lower() for term in vocabulary]

    def _embed(self, text: str) -> List[float]:
        words = re.findall(r"[a-z0-9]+", text.lower())
        return [1.0] + [float(words.count(term)) for term in self.vocabulary]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._embed(text)


class FailingEmbeddings(Embeddings):
    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("embedding service unavailable")

    def embed_query(self, text: str) -> List[float]:
        raise RuntimeError("embedding service unavailable")


VOCABULARY = [
    "hiking", "mountains", "nurse", "hospital", "tea", "coffee",
    "vpn", "printer", "password", "network", "laptop", "email",
    "machine", "learning", "vector", "databases", "langgraph",
]

KNOWLEDGE_DOCUMENTS = [
    Document(
        page_content="Machine learning lets systems learn patterns from data. Supervised, unsupervised and reinforcement learning are the three main types.",
        metadata={"source_file": "ml_basics.md"},
    ),
    Document(
        page_content="Vector databases store embeddings and answer similarity queries. FAISS is a popular vector search library.",
        metadata={"source_file": "vector_databases.md"},
    ),
    Document(
        page_content="LangGraph builds stateful agent workflows as graphs of nodes and edges.",
        metadata={"source_file": "langgraph.txt"},
    ),
    Document(
        page_content="VPN troubleshooting: if the VPN client fails on a laptop, reinstall the client and check the network adapter.",
        metadata={"source_file": "network_runbook.md"},
    ),
    Document(
        page_content="Printer issues: clear the print queue, then power cycle the printer.",
        metadata={"source_file": "hardware_runbook.md"},
    ),
]


@pytest.fixture
def embeddings():
    return KeywordEmbeddings(VOCABULARY)


@pytest.fixture
def store():
    memory_store = MemoryStore(":memory:")
    yield memory_store
    memory_store.close()


@pytest.fixture
def make_manager(store, embeddings):
    """Build a memory manager over the in-memory store with a scripted oracle"""

    def build(
        facts: Optional[Dict[str, Tuple[str, Reply]]] = None,
        generation: Optional[FakeGenerationService] = None,
        **limits: Any,
    ) -> MemoryManager:
        oracle_generation = generation or FakeGenerationService(handler=oracle_handler(facts or {}))
        return MemoryManager(
            store,
            ImportanceOracle(oracle_generation),
            ArchiveVectorIndex(embeddings),
            **limits,
        )

    return build


@pytest.fixture
async def retriever(embeddings):
    knowledge = VectorKnowledgeRetriever(embeddings)
    await knowledge.add_documents(KNOWLEDGE_DOCUMENTS)
    return knowledge
