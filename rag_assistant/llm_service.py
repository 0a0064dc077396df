"""
LLM Service Module

Provides an abstraction layer for chat completion providers:
- Cloud: OpenAI (gpt-4o-mini for answers, o4-mini for the agent) - Requires API key.
  Any OpenAI-compatible server (e.g. Ollama's /v1 endpoint) works via base_url.
- Cloud: Mistral AI - Requires API key

Two modes are offered:
- complete(messages): plain completion, returns LLMResponse
- complete_with_tools(messages, tools, tool_choice): tool-augmented completion,
  returns either a DirectAnswer or a ToolRequest

Design Rationale:
- Abstract interface allows easy switching between providers
- The model's reply is parsed into a small tagged union, so orchestration code
  branches on a type instead of poking at nested optional fields
- Every upstream failure becomes a GenerationError classified as
  rate limit / authentication / quota / generic

Usage:
    llm = LLMService(settings.llm)
    response = await llm.complete([{"role": "user", "content": "What is RAG?"}])

    result = await llm.complete_with_tools(messages, [search_tool], tool_choice="auto")
    if isinstance(result, ToolRequest):
        ...
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from config.settings import LLMConfig
from rag_assistant.errors import GenerationError

# Configure logging
logger = logging.getLogger(__name__)

Message = Dict[str, Any]


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """

    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


@dataclass(frozen=True)
class ToolDefinition:
    """A function the model may call, with a JSON-schema parameter spec."""

    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_openai(self) -> Dict[str, Any]:
        """Chat-completions ``tools`` entry (also accepted by Mistral)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ToolCall:
    """
    A tool invocation requested by the model.

    Attributes:
        id: Call id, echoed back in the tool result message
        name: Function name
        arguments: Raw JSON string as produced by the model
    """

    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> Dict[str, Any]:
        """Decode arguments; invalid JSON or a non-object value yields {}."""
        try:
            parsed = json.loads(self.arguments) if self.arguments else {}
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Tool call {self.id} has invalid JSON arguments")
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_message_entry(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class DirectAnswer:
    """The model answered without requesting a tool."""

    content: str


@dataclass(frozen=True)
class ToolRequest:
    """
    The model requested at least one tool call.

    Attributes:
        tool_call: The first call, the only one honored
        tool_calls: Every call the model produced
        content: Any text produced alongside the calls
    """

    tool_call: ToolCall
    tool_calls: Tuple[ToolCall, ...]
    content: Optional[str] = None

    def assistant_message(self) -> Message:
        """
        Assistant turn to replay before the tool result.

        Only the honored call is included: the API rejects a follow-up that
        leaves any listed tool call without a matching tool message.
        """
        return {
            "role": "assistant",
            "content": self.content,
            "tool_calls": [self.tool_call.to_message_entry()],
        }


CompletionResult = Union[DirectAnswer, ToolRequest]


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def parse_completion_message(message: Any) -> CompletionResult:
    """
    Turn a provider's ``choices[0].message`` into a CompletionResult.

    Works on SDK objects and plain dicts. Tool-call arguments given as a dict
    (Mistral does this) are re-serialized to JSON.
    """
    if message is None:
        raise GenerationError("Completion response has no message")

    content = _field(message, "content")
    raw_calls = _field(message, "tool_calls") or []

    calls = []
    for raw in raw_calls:
        function = _field(raw, "function") or {}
        arguments = _field(function, "arguments", "")
        if isinstance(arguments, dict):
            arguments = json.dumps(arguments)
        calls.append(ToolCall(
            id=str(_field(raw, "id", "") or ""),
            name=str(_field(function, "name", "") or ""),
            arguments=arguments or "",
        ))

    if calls:
        return ToolRequest(tool_call=calls[0], tool_calls=tuple(calls), content=content)
    return DirectAnswer(content=content or "")


def _first_choice(response: Any):
    choices = _field(response, "choices") or []
    if not choices:
        raise GenerationError("Completion response has no choices")
    return choices[0]


def _usage(response: Any) -> Optional[Dict[str, int]]:
    usage = _field(response, "usage")
    if not usage:
        return None
    return {
        "prompt_tokens": _field(usage, "prompt_tokens", 0),
        "completion_tokens": _field(usage, "completion_tokens", 0),
        "total_tokens": _field(usage, "total_tokens", 0),
    }


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement:
    - chat: Plain completion over a message list
    - chat_with_tools: Completion with function tools
    - model_name: Model identifier
    """

    @abstractmethod
    async def chat(self, messages: List[Message]) -> LLMResponse:
        pass

    @abstractmethod
    async def chat_with_tools(
        self,
        messages: List[Message],
        tools: List[ToolDefinition],
        tool_choice: str = "auto",
    ) -> CompletionResult:
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI chat completions (or any OpenAI-compatible server).

    Temperature is only sent when configured; reasoning models such as
    o4-mini reject it.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        client=None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: Model name
            api_key: OpenAI API key
            base_url: Optional OpenAI-compatible endpoint
            temperature: Sampling temperature, omitted when None
            client: Pre-built AsyncOpenAI client (mainly for tests)
        """
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._temperature = temperature
        self._client = client

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self):
        """Get or create the async OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
            logger.info(f"OpenAI client initialized with model: {self._model}")
        return self._client

    async def _create(self, **kwargs):
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        try:
            return await self._get_client().chat.completions.create(model=self._model, **kwargs)
        except Exception as e:
            logger.error(f"OpenAI completion error: {e}")
            raise GenerationError.from_exception(e) from e

    async def chat(self, messages: List[Message]) -> LLMResponse:
        response = await self._create(messages=messages)
        choice = _first_choice(response)
        message = _field(choice, "message")
        if message is None:
            raise GenerationError("Completion response has no message")
        return LLMResponse(
            content=_field(message, "content") or "",
            model=_field(response, "model") or self._model,
            usage=_usage(response),
            finish_reason=_field(choice, "finish_reason"),
        )

    async def chat_with_tools(
        self,
        messages: List[Message],
        tools: List[ToolDefinition],
        tool_choice: str = "auto",
    ) -> CompletionResult:
        response = await self._create(
            messages=messages,
            tools=[t.to_openai() for t in tools],
            tool_choice=tool_choice,
        )
        return parse_completion_message(_field(_first_choice(response), "message"))

    @property
    def model_name(self) -> str:
        return self._model


class MistralProvider(BaseLLMProvider):
    """
    Mistral AI cloud provider.

    Models:
    - mistral-small-latest: Fast, efficient (default)
    - mistral-medium-latest: Balanced
    - mistral-large-latest: Most capable
    """

    def __init__(
        self,
        model: str = "mistral-small-latest",
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        client=None,
    ):
        self._model = model
        self._api_key = api_key
        self._temperature = temperature
        self._client = client

        logger.info(f"Initializing MistralProvider: model={model}")

    def _get_client(self):
        """Get or create Mistral client."""
        if self._client is None:
            from mistralai import Mistral

            self._client = Mistral(api_key=self._api_key)
            logger.info(f"Mistral client initialized with model: {self._model}")
        return self._client

    async def _create(self, **kwargs):
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        try:
            return await self._get_client().chat.complete_async(model=self._model, **kwargs)
        except Exception as e:
            logger.error(f"Mistral completion error: {e}")
            raise GenerationError.from_exception(e) from e

    async def chat(self, messages: List[Message]) -> LLMResponse:
        response = await self._create(messages=messages)
        if response is None:
            raise GenerationError("Mistral returned an empty response")
        choice = _first_choice(response)
        message = _field(choice, "message")
        if message is None:
            raise GenerationError("Completion response has no message")
        return LLMResponse(
            content=_field(message, "content") or "",
            model=self._model,
            usage=_usage(response),
            finish_reason=_field(choice, "finish_reason"),
        )

    async def chat_with_tools(
        self,
        messages: List[Message],
        tools: List[ToolDefinition],
        tool_choice: str = "auto",
    ) -> CompletionResult:
        response = await self._create(
            messages=messages,
            tools=[t.to_openai() for t in tools],
            tool_choice=tool_choice,
        )
        if response is None:
            raise GenerationError("Mistral returned an empty response")
        return parse_completion_message(_field(_first_choice(response), "message"))

    @property
    def model_name(self) -> str:
        return self._model


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.
    It handles provider selection based on configuration.

    Example:
        llm = LLMService(settings.llm)                       # answer model
        agent_llm = LLMService(settings.llm, model=settings.llm.openai_agent_model)
    """

    def __init__(
        self,
        config: LLMConfig,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        backend: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            config: LLMConfig instance
            provider: "openai" or "mistral" (default from config)
            model: Override the provider's configured model
            backend: Pre-built provider, bypassing selection
        """
        self.config = config
        provider = provider or config.provider

        if backend is not None:
            self._provider = backend
        elif provider == "openai":
            self._provider = OpenAIProvider(
                model=model or config.openai_model,
                api_key=config.openai_api_key,
                base_url=config.openai_base_url,
                temperature=config.temperature,
            )
        elif provider == "mistral":
            self._provider = MistralProvider(
                model=model or config.mistral_model,
                api_key=config.mistral_api_key,
                temperature=config.temperature,
            )
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")

        self._provider_name = provider
        logger.info(f"LLMService initialized with {provider} provider")

    async def complete(self, messages: List[Message]) -> LLMResponse:
        """
        Plain completion.

        Raises:
            GenerationError: upstream failure or unusable response
        """
        return await self._provider.chat(messages)

    async def complete_with_tools(
        self,
        messages: List[Message],
        tools: List[ToolDefinition],
        tool_choice: str = "auto",
    ) -> CompletionResult:
        """
        Completion that may request a tool call.

        Args:
            tool_choice: "auto" lets the model decide, "none" forbids calls
        """
        return await self._provider.chat_with_tools(messages, tools, tool_choice=tool_choice)

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        return self._provider_name
