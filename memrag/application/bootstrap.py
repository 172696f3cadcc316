from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog
from langchain_core.embeddings import Embeddings

from memrag.config import Settings
from memrag.domain.context.knowledge.document_loader import DocumentLoader, find_supported_files, map_sources
from memrag.domain.context.knowledge.file_change_tracker import FileChangeTracker, manifest_path_for
from memrag.domain.context.knowledge.knowledge_retriever import VectorKnowledgeRetriever
from memrag.domain.context.memory.importance_oracle import ImportanceOracle
from memrag.domain.context.memory.memory_manager import MemoryManager
from memrag.domain.context.memory.memory_store import MemoryStore
from memrag.domain.context.memory.vector_memory_store import ArchiveVectorIndex
from memrag.domain.exceptions import ConfigurationError
from memrag.domain.orchestration.core.main_agent import AgentOrchestrator
from memrag.domain.orchestration.core.triage_agent import TriageAgentOrchestrator
from memrag.domain.orchestration.triage.routing import RoutingPolicy
from memrag.infrastructure.llm.generation import GenerationService
from memrag.infrastructure.llm.providers import build_embeddings, build_generation_service

logger = structlog.get_logger(__name__)


@dataclass
class AgentSystem:
    """Everything a presentation adapter needs for one session"""
    orchestrator: AgentOrchestrator
    memory_manager: MemoryManager
    retriever: VectorKnowledgeRetriever
    store: MemoryStore
    triage: bool = False

    def close(self) -> None:
        self.store.close()


def validate_settings(settings: Settings) -> None:
    if not settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is not set. Add it to your environment or a .env file."
        )

    if not Path(settings.knowledge_base_dir).is_dir():
        raise ConfigurationError(
            f"Knowledge base directory not found: {settings.knowledge_base_dir}"
        )

    if not find_supported_files(settings.knowledge_base_dir):
        raise ConfigurationError(
            f"No .txt, .md or .pdf files in knowledge base directory: {settings.knowledge_base_dir}"
        )


async def load_knowledge_base(settings: Settings, embeddings: Embeddings) -> VectorKnowledgeRetriever:
    """Restore the saved index and re-embed only the knowledge files that changed.

    Each file's content hash is kept in a manifest beside the index. Added and
    modified files are (re)chunked, chunks from modified and deleted files are
    dropped. Without a usable saved index everything is indexed from scratch.
    """

    retriever = VectorKnowledgeRetriever(embeddings, persistence_path=settings.vector_store_path)
    tracker = FileChangeTracker(manifest_path_for(settings.vector_store_path))
    current = map_sources(settings.knowledge_base_dir)
    changes = tracker.detect_changes(current)

    cache_loaded = bool(changes.unchanged) and retriever.load()
    if cache_loaded:
        # Chunks whose file is not known to be unchanged cannot be trusted
        stale = retriever.source_files() - set(changes.unchanged)
        retriever.remove_documents_by_source(stale)
        to_index = changes.to_index
    else:
        tracker.clear()
        to_index = sorted(current)

    logger.info(
        "Knowledge base changes",
        added=len(changes.added),
        modified=len(changes.modified),
        removed=len(changes.removed),
        unchanged=len(changes.unchanged),
        cache_loaded=cache_loaded,
    )

    if cache_loaded and not changes.has_changes:
        return retriever

    loader = DocumentLoader(settings.chunk_size, settings.chunk_overlap)
    documents, failed = loader.load_sources({source: current[source] for source in to_index})
    await retriever.add_documents(documents)
    if not retriever.has_documents():
        raise ConfigurationError(
            f"Knowledge base directory has no readable content: {settings.knowledge_base_dir}"
        )

    retriever.save()
    tracker.remove(changes.removed + failed)
    tracker.update({source: current[source] for source in to_index if source not in failed})
    tracker.save()
    logger.info("Knowledge base indexed", chunks=retriever.document_count, reindexed=len(to_index) - len(failed))
    return retriever


async def setup_system(
    settings: Settings,
    triage: bool = False,
    embeddings: Optional[Embeddings] = None,
    generation: Optional[GenerationService] = None,
    oracle_generation: Optional[GenerationService] = None,
) -> AgentSystem:
    """Validate configuration and assemble the agent.

    Raises ConfigurationError before anything is built when credentials or the
    knowledge base are missing.
    """

    validate_settings(settings)

    embeddings = embeddings or build_embeddings(settings)
    generation = generation or build_generation_service(settings, settings.llm_temperature)
    oracle_generation = oracle_generation or build_generation_service(settings, settings.oracle_temperature)

    retriever = await load_knowledge_base(settings, embeddings)

    store = MemoryStore(settings.memory_db_path)
    memory_manager = MemoryManager(
        store,
        ImportanceOracle(oracle_generation),
        ArchiveVectorIndex(embeddings),
        max_active_memories=settings.max_active_memories,
        importance_threshold=settings.memory_importance_threshold,
        max_context_length=settings.max_context_length,
        consolidation_trigger=settings.consolidation_trigger,
    )
    await memory_manager.initialize()

    if triage:
        orchestrator: AgentOrchestrator = TriageAgentOrchestrator(
            memory_manager,
            retriever,
            generation,
            routing_policy=RoutingPolicy(
                min_questions_before_ticket=settings.min_questions_before_ticket,
                max_questions_before_forced_ticket=settings.max_questions_before_forced_ticket,
                min_description_length=settings.min_description_length,
            ),
            category_search_top_k=settings.category_search_top_k,
            critical_keywords=settings.critical_keywords,
            high_urgency_keywords=settings.high_urgency_keywords,
            memory_context_size=settings.memory_context_size,
        )
    else:
        orchestrator = AgentOrchestrator(
            memory_manager,
            retriever,
            generation,
            top_k_documents=settings.top_k_documents,
            memory_context_size=settings.memory_context_size,
        )

    logger.info(
        "Agent ready",
        triage=triage,
        knowledge_chunks=retriever.document_count,
        memories=store.count(),
    )
    return AgentSystem(
        orchestrator=orchestrator,
        memory_manager=memory_manager,
        retriever=retriever,
        store=store,
        triage=triage,
    )
