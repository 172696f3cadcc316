from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from memrag.domain.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".md", ".pdf"}


def find_supported_files(directory: str) -> List[Path]:
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(
        path for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def map_sources(directory: str) -> Dict[str, Path]:
    """Supported files keyed by their path relative to ``directory``"""
    root = Path(directory)
    return {path.relative_to(root).as_posix(): path for path in find_supported_files(directory)}


class DocumentLoader:
    """Reads text, markdown and PDF files and splits them into chunks"""

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

    def load_file(self, path: Path, source: Optional[str] = None) -> List[Document]:
        extension = path.suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise ValueError(f"Unsupported file type: {extension}")

        if extension == ".pdf":
            # One document per page; page numbers stay in the chunk metadata
            chunks = self.splitter.split_documents(PyPDFLoader(str(path)).load())
        else:
            text = path.read_text(encoding="utf-8", errors="replace")
            chunks = self.splitter.create_documents([text])

        for chunk in chunks:
            chunk.metadata["source_file"] = source or path.name
            chunk.metadata["file_type"] = extension
        return chunks

    def load_sources(self, files: Dict[str, Path]) -> Tuple[List[Document], List[str]]:
        """Chunk each file; returns the chunks and the sources that could not be read"""

        chunks: List[Document] = []
        failed: List[str] = []
        for source, path in sorted(files.items()):
            try:
                file_chunks = self.load_file(path, source)
            except Exception as e:
                logger.warning("Could not read knowledge file", file=source, error=str(e))
                failed.append(source)
                continue
            chunks.extend(file_chunks)
            logger.info("Knowledge file loaded", file=source, chunks=len(file_chunks))

        return chunks, failed

    def load_directory(self, directory: str) -> List[Document]:
        if not Path(directory).is_dir():
            raise ConfigurationError(f"Knowledge base directory not found: {directory}")

        chunks, _ = self.load_sources(map_sources(directory))
        return chunks
