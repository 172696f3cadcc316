from langchain_core.embeddings import Embeddings
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from memrag.config import Settings
from memrag.infrastructure.llm.generation import ChatModelGenerationService


def build_generation_service(settings: Settings, temperature: float) -> ChatModelGenerationService:
    """Chat-model-backed generation service for the configured provider"""

    chat_model = ChatOpenAI(
        model=settings.llm_model,
        temperature=temperature,
        api_key=settings.openai_api_key,
        max_retries=settings.generation_max_retries,
    )
    return ChatModelGenerationService(chat_model)


def build_embeddings(settings: Settings) -> Embeddings:
    return OpenAIEmbeddings(
        model=settings.embedding_model,
        api_key=settings.openai_api_key,
        max_retries=settings.generation_max_retries,
    )
