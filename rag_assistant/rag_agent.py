"""
RAG Agent Module

Agentic chat: the model decides per turn whether to consult the knowledge
base through a single search tool.

    FIRST_CALL (tool_choice="auto")
        -> DirectAnswer                      -> DONE
        -> ToolRequest -> SEARCH -> FOLLOWUP_CALL (tool_choice="none") -> DONE

Design Rationale:
- At most one tool round per user turn: only the first requested call is
  executed and the follow-up forbids further calls
- The search step never aborts the turn. Any failure, an empty query or zero
  results all produce the no-context string, and the model answers from that
- The system prompt tells the model not to reveal the tool or the retrieved
  context

Interface:
    agent = create_agent(settings)
    reply = await agent.chat([{"role": "user", "content": "What's the pricing?"}])
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from config.settings import Settings
from rag_assistant.errors import ValidationError
from rag_assistant.llm_service import DirectAnswer, LLMService, ToolDefinition
from rag_assistant.memory import ChatMessage
from rag_assistant.retriever import Retriever, build_retriever

logger = logging.getLogger(__name__)


def search_tool(name: str, description: str) -> ToolDefinition:
    """Tool definition for knowledge-base search, one string argument ``query``."""
    return ToolDefinition(
        name=name,
        description=description,
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Standalone search query derived from the user question.",
                },
            },
            "required": ["query"],
        },
    )


class RAGAgent:
    """
    Chat agent with an on-demand knowledge-base search tool.

    Holds no conversation state: every call receives the full conversation.
    """

    def __init__(
        self,
        llm_service: LLMService,
        retriever: Retriever,
        system_prompt: str,
        no_context_message: str,
        tool: ToolDefinition,
        logger: Optional[logging.Logger] = None,
    ):
        self.llm_service = llm_service
        self.retriever = retriever
        self.system_prompt = system_prompt
        self.no_context_message = no_context_message
        self.tool = tool
        self.logger = logger or logging.getLogger(__name__)

    async def chat(self, messages: Sequence[Any]) -> str:
        """
        Produce the assistant's reply to a conversation.

        Args:
            messages: Conversation oldest first, ending with the user's latest
                message. ChatMessage instances or role/content dicts.

        Returns:
            Reply text ("" when the model returns no content)

        Raises:
            ValidationError: empty conversation or malformed message
            GenerationError: either completion call failed
        """
        if not messages:
            raise ValidationError("At least one message is required")

        conversation = [_as_message(m).to_dict() for m in messages]
        base: List[Dict[str, Any]] = [{"role": "system", "content": self.system_prompt}, *conversation]

        first = await self.llm_service.complete_with_tools(base, [self.tool], tool_choice="auto")

        if isinstance(first, DirectAnswer):
            self.logger.info("Model answered without searching")
            return first.content

        if len(first.tool_calls) > 1:
            self.logger.warning(
                f"Model requested {len(first.tool_calls)} tool calls, only the first is executed"
            )

        call = first.tool_call
        if call.name != self.tool.name:
            self.logger.warning(f"Model called unknown tool '{call.name}', treating it as a search")

        query = call.parse_arguments().get("query")
        if not isinstance(query, str):
            query = ""

        self.logger.info(f"Tool call {call.name} with query: {query[:100]}")
        result = await self.search(query)

        followup = [
            *base,
            first.assistant_message(),
            {
                "role": "tool",
                "name": self.tool.name,
                "tool_call_id": call.id,
                "content": result,
            },
        ]
        second = await self.llm_service.complete_with_tools(followup, [self.tool], tool_choice="none")

        if isinstance(second, DirectAnswer):
            return second.content
        # tool_choice="none" forbids calls; keep whatever text came with them
        self.logger.warning("Model requested a tool during the follow-up call, ignoring it")
        return second.content or ""

    async def search(self, query: str) -> str:
        """
        Knowledge-base lookup backing the search tool.

        Returns the text of every surviving chunk joined by a blank line, or
        the no-context message. Never raises.
        """
        if not query or not query.strip():
            return self.no_context_message

        try:
            documents = await self.retriever.retrieve(query)
        except Exception as e:
            self.logger.error(f"Knowledge-base search failed: {e}", exc_info=True)
            return self.no_context_message

        texts = [doc.text for doc in documents if doc.text]
        if not texts:
            return self.no_context_message
        return "\n\n".join(texts)


def _as_message(message: Any) -> ChatMessage:
    if isinstance(message, ChatMessage):
        return message
    return ChatMessage.from_dict(message)


def create_agent(
    settings: Settings,
    retriever: Optional[Retriever] = None,
    llm_service: Optional[LLMService] = None,
) -> RAGAgent:
    """
    Create a RAG Agent from settings.

    The OpenAI provider uses the dedicated agent model; other providers use
    their configured model.
    """
    if llm_service is None:
        model = settings.llm.openai_agent_model if settings.llm.provider == "openai" else None
        llm_service = LLMService(settings.llm, model=model)

    return RAGAgent(
        llm_service=llm_service,
        retriever=retriever or build_retriever(settings),
        system_prompt=settings.chat.agent_system_prompt,
        no_context_message=settings.chat.no_context_message,
        tool=search_tool(settings.chat.search_tool_name, settings.chat.search_tool_description),
    )
