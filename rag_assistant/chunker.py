"""
Markdown Chunker Module

Splits documentation pages into retrieval chunks with heading metadata.
Uses LangChain text splitters for the mechanics.

Chunking Strategy:
- Heading boundaries first: ``#`` is the page title, ``##`` the section,
  ``###`` the subsection. Headings stay in the chunk text.
- Sections longer than max_chunk_size are split again on paragraph, line and
  sentence boundaries with overlap.
- Neighbouring chunks shorter than min_chunk_size are merged while they share
  the same title and section.
- Chunk ids are deterministic (``<file stem>#<index>-<content hash>``):
  unchanged chunks keep their id, and every record of a file can be found by
  id prefix, which is how the indexer drops records an edit made stale.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from langchain_text_splitters import MarkdownHeaderTextSplitter, RecursiveCharacterTextSplitter

from config.settings import ChunkingConfig
from rag_assistant.retriever import DocumentMetadata

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_SECTION = "Introduction"

HEADERS_TO_SPLIT_ON = [
    ("#", "title"),
    ("##", "section"),
    ("###", "subsection"),
]


def source_prefix(source: str) -> str:
    """Id prefix shared by every chunk of a source file."""
    return f"{Path(source).stem}#"


@dataclass
class DocumentChunk:
    """
    A chunk of a source document, ready to be embedded and indexed.

    Attributes:
        text: The chunk text, headings included
        metadata: Provenance (source, section, title, subsection)
        chunk_index: Position of this chunk in the document (0-indexed)
        id: Deterministic identifier, generated when empty
        embedding: Vector embedding (populated by the indexer)
    """

    text: str
    metadata: DocumentMetadata
    chunk_index: int
    id: str = ""
    embedding: Optional[List[float]] = None

    def __post_init__(self):
        if not self.id:
            content_hash = hashlib.md5(
                f"{self.metadata.source}:{self.chunk_index}:{self.text}".encode()
            ).hexdigest()[:12]
            self.id = f"{source_prefix(self.metadata.source)}{self.chunk_index}-{content_hash}"

    def to_record_metadata(self) -> Dict[str, Any]:
        """Metadata stored with the vector; carries the text for retrieval."""
        return {
            "text": self.text,
            **self.metadata.to_dict(),
            "chunk_index": self.chunk_index,
        }


class MarkdownChunker:
    """
    Heading-aware markdown chunker.

    Example:
        chunker = MarkdownChunker(settings.chunking)
        chunks = chunker.process_file("docs/getting-started.md")
        for chunk in chunks:
            print(chunk.metadata.section, len(chunk.text))
    """

    SUPPORTED_EXTENSIONS = (".md", ".markdown")

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

        self._header_splitter = MarkdownHeaderTextSplitter(
            headers_to_split_on=HEADERS_TO_SPLIT_ON,
            strip_headers=False,
        )
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.max_chunk_size,
            chunk_overlap=self.config.chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", "? ", "! ", " ", ""],
            keep_separator=True,
        )

        logger.info(
            f"MarkdownChunker initialized: min={self.config.min_chunk_size}, "
            f"max={self.config.max_chunk_size}, overlap={self.config.chunk_overlap}"
        )

    def process_text(self, text: str, source: str) -> List[DocumentChunk]:
        """
        Chunk markdown text.

        Args:
            text: Markdown content
            source: File name recorded in every chunk's metadata

        Returns:
            Chunks in document order
        """
        pieces = []
        for section_doc in self._header_splitter.split_text(text):
            headers = section_doc.metadata
            metadata = DocumentMetadata(
                source=source,
                section=headers.get("section") or headers.get("title") or DEFAULT_SECTION,
                title=headers.get("title"),
                subsection=headers.get("subsection"),
            )
            for piece in self._splitter.split_text(section_doc.page_content):
                piece = piece.strip()
                if piece:
                    pieces.append((piece, metadata))

        merged = self._merge_small(pieces)

        chunks = [
            DocumentChunk(text=piece, metadata=metadata, chunk_index=i)
            for i, (piece, metadata) in enumerate(merged)
        ]

        logger.info(
            f"Created {len(chunks)} chunks from {source} "
            f"(avg {sum(len(c.text) for c in chunks) // max(len(chunks), 1)} chars/chunk)"
        )
        return chunks

    def _merge_small(self, pieces):
        """Merge undersized neighbours that share title and section."""
        merged = []
        for text, metadata in pieces:
            if merged:
                prev_text, prev_meta = merged[-1]
                same_section = (prev_meta.title, prev_meta.section) == (metadata.title, metadata.section)
                fits = len(prev_text) + len(text) + 2 <= self.config.max_chunk_size
                if same_section and fits and len(prev_text) < self.config.min_chunk_size:
                    # keep the first piece's subsection
                    merged[-1] = (f"{prev_text}\n\n{text}", prev_meta)
                    continue
            merged.append((text, metadata))
        return merged

    def process_file(self, file_path: Union[str, Path]) -> List[DocumentChunk]:
        """
        Chunk a markdown file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not markdown
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Document not found: {file_path}")
        if file_path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"Unsupported file type: {file_path.suffix}. "
                f"Supported types: {list(self.SUPPORTED_EXTENSIONS)}"
            )

        logger.info(f"Processing document: {file_path.name}")
        return self.process_text(file_path.read_text(encoding="utf-8"), source=file_path.name)

    def process_directory(self, directory_path: Union[str, Path], recursive: bool = True) -> List[DocumentChunk]:
        """Chunk every markdown file in a directory."""
        directory_path = Path(directory_path)

        if not directory_path.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory_path}")

        pattern = "**/*" if recursive else "*"
        chunks: List[DocumentChunk] = []
        for extension in self.SUPPORTED_EXTENSIONS:
            for file_path in sorted(directory_path.glob(f"{pattern}{extension}")):
                chunks.extend(self.process_file(file_path))

        logger.info(f"Processed directory {directory_path.name}: {len(chunks)} total chunks")
        return chunks
