from typing import Dict, List, Protocol, runtime_checkable

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage, SystemMessage

from memrag.domain.exceptions import GenerationError

logger = structlog.get_logger(__name__)

_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "human": HumanMessage,
    "assistant": AIMessage,
    "ai": AIMessage,
}


@runtime_checkable
class GenerationService(Protocol):
    """Text-generation collaborator: ordered role/content messages in, text out"""

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        ...


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    converted = []
    for message in messages:
        role = message.get("role", "user")
        message_cls = _MESSAGE_TYPES.get(role)
        if message_cls is None:
            raise ValueError(f"Unsupported message role: {role}")
        converted.append(message_cls(content=message.get("content", "")))
    return converted


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class ChatModelGenerationService:
    """GenerationService backed by a LangChain chat model.

    Retries are the chat model's own concern (``max_retries`` on the provider
    client); any failure that survives them surfaces as ``GenerationError``.
    """

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = await self.chat_model.ainvoke(to_langchain_messages(messages))
        except Exception as e:
            logger.warning("Generation call failed", error=str(e))
            raise GenerationError(str(e)) from e
        return message_text(response)
