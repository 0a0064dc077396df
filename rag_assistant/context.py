"""
Context Assembly

Builds the prompt for a direct RAG answer:
- numbered context block from retrieved documents
- system prompt = base instructions + context block
- bounded conversation history window

Format of one context entry:
    [1] guide.md - Exporting (Markdown):
    <chunk text>

Entries are separated by a horizontal rule so the model sees clear boundaries.
"""

import logging
from typing import Dict, List, Sequence

from rag_assistant.memory import ChatMessage, ConversationWindow
from rag_assistant.retriever import RetrievedDocument

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"
CONTEXT_HEADER = "Context from documentation:"
NO_CONTEXT_MARKER = "No context available."


class ContextAssembler:
    """
    Formats retrieved documents and history into chat messages.

    Example:
        assembler = ContextAssembler(settings.chat.system_prompt, max_conversation_history=4)
        messages = assembler.build_messages(query, documents, history)
    """

    def __init__(self, system_prompt: str, max_conversation_history: int = 4):
        self.system_prompt = system_prompt
        self.max_conversation_history = max_conversation_history

    @staticmethod
    def format_document(position: int, document: RetrievedDocument) -> str:
        """Render one document as ``[n] source - section (subsection):\\ntext``."""
        meta = document.metadata
        header = f"[{position}] {meta.source} - {meta.section}"
        if meta.subsection:
            header += f" ({meta.subsection})"
        return f"{header}:\n{document.text}"

    def build_context(self, documents: Sequence[RetrievedDocument]) -> str:
        """Join formatted documents, numbered from 1 in retrieval order."""
        return CONTEXT_SEPARATOR.join(
            self.format_document(i, doc) for i, doc in enumerate(documents, 1)
        )

    def build_system_prompt(self, documents: Sequence[RetrievedDocument]) -> str:
        context = self.build_context(documents) or NO_CONTEXT_MARKER
        return f"{self.system_prompt}\n\n{CONTEXT_HEADER}\n{context}"

    def window(self, history: Sequence[ChatMessage]) -> ConversationWindow:
        return ConversationWindow(history, self.max_conversation_history)

    def build_messages(
        self,
        query: str,
        documents: Sequence[RetrievedDocument],
        history: Sequence[ChatMessage] = (),
    ) -> List[Dict[str, str]]:
        """
        Build the full message list for the completion call.

        Returns:
            [system, *last N history messages, user query]
        """
        window = self.window(history)
        logger.debug(
            f"Assembling prompt: {len(documents)} documents, "
            f"{len(window)}/{len(history)} history messages"
        )
        return [
            {"role": "system", "content": self.build_system_prompt(documents)},
            *window.to_llm_messages(),
            {"role": "user", "content": query},
        ]
