from typing import Dict, Any, Optional, Callable, Awaitable
import structlog

from memrag.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str], Awaitable[None]]

NODE_STATUS = {
    "query_processor": "Message received",
    "memory_retrieval": "Recalled what I know about you",
    "rag_retrieval": "Searched the knowledge base",
    "generate_response": "Drafted a reply",
    "conversation": "Drafted a reply",
    "extraction": "Noted ticket details",
    "categorization": "Matched ticket categories",
    "routing_decision": "Chose the next step",
    "ticket_generator": "Wrote your ticket",
    "memory_update": "Updated memory",
}


class TurnProgressHandler:
    """Turns graph node updates into progress statuses for the presentation layer"""

    def __init__(self, on_progress: Optional[ProgressCallback] = None):
        self.on_progress = on_progress
        self.completed_nodes: list = []
        self.iteration = 0

    async def handle_update(self, update: Dict[str, Any]):
        """Handle one ``astream`` update chunk ({node_name: patch})"""

        for node_id, patch in update.items():
            await self._process_node_update(node_id, patch or {})

    async def _process_node_update(self, node_id: str, patch: Dict[str, Any]):
        self.completed_nodes.append(node_id)
        # Only query_processor carries the turn number; later nodes inherit it
        self.iteration = patch.get("iteration_count", self.iteration)
        agent_logger.node_completed(node_id, self.iteration, patch.keys())

        status = self._status_for(node_id)
        if status and self.on_progress is not None:
            try:
                await self.on_progress(status)
            except Exception as e:
                logger.error("Error in progress callback", node=node_id, error=str(e))

    @staticmethod
    def _status_for(node_id: str) -> Optional[str]:
        return NODE_STATUS.get(node_id)

    def reset(self):
        self.completed_nodes = []
        self.iteration = 0
