"""
HTTP API

FastAPI application exposing both chat protocols:

    POST /api/ask   {message, conversationHistory}  -> {answer, sources}   direct RAG
    POST /api/chat  {messages}                      -> {reply}             agent with search tool
    GET  /health                                    -> {status: "ok"}

Malformed payloads are answered with 400 {"error": ...}; pipeline failures
with 500 {"error": ...} carrying a non-sensitive message. Details are logged.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictStr

from config.settings import Settings, load_settings
from rag_assistant.errors import AssistantError, ValidationError
from rag_assistant.memory import ChatMessage
from rag_assistant.rag_agent import RAGAgent, create_agent
from rag_assistant.rag_chain import RAGChain, create_rag_chain
from rag_assistant.retriever import build_retriever

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred. Please try again."


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: StrictStr = Field(min_length=1)

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class AskRequest(BaseModel):
    message: StrictStr = Field(min_length=1)
    conversationHistory: List[ChatMessageIn] = Field(default_factory=list)


class SourcePreview(BaseModel):
    text: str
    source: str
    section: str
    title: Optional[str] = None
    subsection: Optional[str] = None
    score: float


class AskResponse(BaseModel):
    answer: str
    sources: List[SourcePreview]


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn] = Field(min_length=1)


class ChatResponse(BaseModel):
    reply: str


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(
    settings: Optional[Settings] = None,
    rag_chain: Optional[RAGChain] = None,
    agent: Optional[RAGAgent] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Components not passed in are created from settings (loaded and validated
    from the environment when not given). Both protocols share one retriever.
    """
    if rag_chain is None or agent is None:
        settings = settings or load_settings()
        retriever = build_retriever(settings)
        rag_chain = rag_chain or create_rag_chain(settings, retriever=retriever)
        agent = agent or create_agent(settings, retriever=retriever)

    app = FastAPI(title="Support Assistant")
    app.state.rag_chain = rag_chain
    app.state.agent = agent

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        description = _describe_validation_error(exc)
        logger.info(f"Rejected {request.url.path}: {description}")
        return JSONResponse(status_code=400, content={"error": description})

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError):
        logger.info(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(AssistantError)
    async def handle_assistant_error(request: Request, exc: AssistantError):
        logger.error(f"{request.url.path} failed: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": exc.user_message})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unexpected error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.post("/api/ask", response_model=AskResponse)
    async def ask(payload: AskRequest) -> AskResponse:
        history = [m.to_message() for m in payload.conversationHistory]
        response = await app.state.rag_chain.answer(payload.message, history)
        return AskResponse(
            answer=response.answer,
            sources=[SourcePreview(**p) for p in response.source_previews()],
        )

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(payload: ChatRequest) -> ChatResponse:
        messages = [m.to_message() for m in payload.messages]
        reply = await app.state.agent.chat(messages)
        return ChatResponse(reply=reply)

    return app
