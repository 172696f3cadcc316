from typing import Dict, Any, List, Optional
from langgraph.graph import StateGraph, END
from langchain_core.documents import Document
import structlog

from memrag.domain.context.knowledge.knowledge_retriever import KnowledgeRetriever
from memrag.domain.context.memory.memory_manager import MemoryManager
from memrag.domain.models.conversation_state import ConversationState
from memrag.domain.models.memory import MemoryEntry, MemoryStats
from memrag.domain.orchestration.prompts import RAG_SYSTEM_PROMPT, FALLBACK_RESPONSE
from memrag.domain.streaming.streaming_handler import TurnProgressHandler
from memrag.infrastructure.llm.generation import GenerationService
from memrag.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


def format_documents(documents: List[Document]) -> str:
    parts = []
    for doc in documents:
        source = doc.metadata.get("source_file", "unknown")
        parts.append(f"[Source: {source}]\n{doc.page_content}")
    return "\n\n".join(parts)


class AgentOrchestrator:
    """Memory-aware RAG agent built on LangGraph.

    One turn runs query_processor -> memory_retrieval -> rag_retrieval ->
    generate_response -> memory_update. Each node returns a patch that the
    graph merges into the conversation state; no node mutates the state it
    receives.
    """

    def __init__(
        self,
        memory_manager: MemoryManager,
        retriever: KnowledgeRetriever,
        generation: GenerationService,
        top_k_documents: int = 3,
        memory_context_size: int = 5,
    ):
        self.memory_manager = memory_manager
        self.retriever = retriever
        self.generation = generation
        self.top_k_documents = top_k_documents
        self.memory_context_size = memory_context_size
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the linear question-answering graph"""

        workflow = StateGraph(ConversationState)

        workflow.add_node("query_processor", self.query_processor_node)
        workflow.add_node("memory_retrieval", self.memory_retrieval_node)
        workflow.add_node("rag_retrieval", self.rag_retrieval_node)
        workflow.add_node("generate_response", self.generate_response_node)
        workflow.add_node("memory_update", self.memory_update_node)

        workflow.set_entry_point("query_processor")

        workflow.add_edge("query_processor", "memory_retrieval")
        workflow.add_edge("memory_retrieval", "rag_retrieval")
        workflow.add_edge("rag_retrieval", "generate_response")
        workflow.add_edge("generate_response", "memory_update")
        workflow.add_edge("memory_update", END)

        return workflow.compile()

    async def query_processor_node(self, state: ConversationState) -> Dict[str, Any]:
        """Normalize the input and advance the turn counter"""

        iteration = state.get("iteration_count", 0) + 1
        structlog.contextvars.bind_contextvars(iteration=iteration)

        return {
            "processed_query": (state.get("user_query") or "").strip(),
            "iteration_count": iteration,
        }

    async def memory_retrieval_node(self, state: ConversationState) -> Dict[str, Any]:
        """Pull recent and recalled memories for this query"""

        try:
            active, recalled = await self.memory_manager.get_context(
                state.get("processed_query", ""), self.memory_context_size
            )
        except Exception as e:
            logger.warning("Memory retrieval failed", error=str(e))
            active, recalled = [], []

        return {
            "active_memories": active,
            "recalled_memories": recalled,
            "memory_stats": self._memory_stats(state),
        }

    async def rag_retrieval_node(self, state: ConversationState) -> Dict[str, Any]:
        """Search the knowledge base"""

        documents = await self._search_knowledge(state.get("processed_query", ""), self.top_k_documents)
        return {"retrieved_documents": documents}

    async def generate_response_node(self, state: ConversationState) -> Dict[str, Any]:
        """Answer the user with memory and knowledge base context"""

        context = self._build_context(
            state.get("active_memories", []),
            state.get("recalled_memories", []),
            state.get("retrieved_documents", []),
        )

        messages = [{"role": "system", "content": RAG_SYSTEM_PROMPT}]
        if context:
            messages.append({"role": "system", "content": f"CONTEXT:\n{context}"})
        messages.append({"role": "user", "content": state.get("user_query", "")})

        return {"agent_response": await self._complete_or_fallback(messages)}

    async def memory_update_node(self, state: ConversationState) -> Dict[str, Any]:
        """Remember personal details from the exchange and log the turn"""

        await self._record(
            state.get("user_query", ""),
            state.get("agent_response", ""),
            {"iteration": state.get("iteration_count", 0)},
        )

        return {
            "conversation_history": self._history_entries(state),
            "memory_stats": self._memory_stats(state),
        }

    async def run_turn(
        self,
        state: ConversationState,
        progress: Optional[TurnProgressHandler] = None,
    ) -> ConversationState:
        """Run one turn and return the resulting state"""

        progress = progress or TurnProgressHandler()
        final_state: ConversationState = dict(state)

        async for mode, chunk in self.workflow.astream(state, stream_mode=["updates", "values"]):
            if mode == "updates":
                await progress.handle_update(chunk)
            else:
                final_state = chunk

        return final_state

    async def _search_knowledge(self, query: str, k: int) -> List[Document]:
        try:
            return await self.retriever.search(query, k)
        except Exception as e:
            logger.warning("Knowledge retrieval failed", error=str(e))
            return []

    def _memory_stats(self, state: ConversationState) -> Optional[MemoryStats]:
        try:
            return self.memory_manager.get_stats()
        except Exception as e:
            logger.warning("Memory stats unavailable", error=str(e))
            return state.get("memory_stats")

    async def _complete_or_fallback(self, messages: List[Dict[str, str]]) -> str:
        try:
            return await self.generation.complete(messages)
        except Exception as e:
            logger.warning("Response generation failed", error=str(e))
            return FALLBACK_RESPONSE

    async def _record(
        self,
        user_text: str,
        assistant_text: str,
        metadata: Dict[str, Any],
    ) -> Optional[MemoryEntry]:
        try:
            memory = await self.memory_manager.record_interaction(user_text, assistant_text, metadata)
        except Exception as e:
            logger.warning("Memory update failed", error=str(e))
            return None

        if memory is not None:
            agent_logger.memory_recorded(
                memory.id, memory.importance_score, kind=metadata.get("kind"), phase=metadata.get("phase"),
            )
        return memory

    def _build_context(
        self,
        active: List[MemoryEntry],
        recalled: List[MemoryEntry],
        documents: List[Document],
    ) -> str:
        parts = []

        memories = self.memory_manager.format_for_prompt(active, recalled)
        if memories:
            parts.append(memories)

        if documents:
            parts.append("=== Knowledge Base ===")
            parts.append(format_documents(documents))

        return "\n\n".join(parts)

    @staticmethod
    def _history_entries(state: ConversationState) -> List[Dict[str, str]]:
        return [
            {"role": "user", "content": state.get("user_query", "")},
            {"role": "assistant", "content": state.get("agent_response", "")},
        ]
