"""Remote extraction/reasoning capability.

The orchestrator talks to a `RemoteCapability`: a single async `request`
taking instruction text plus content blocks and returning the response text
with any reasoning ("thinking") the model exposed. `LangChainCapability`
backs it with a local Ollama model; `ScriptedCapability` replays fixed
responses for tests and offline runs.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import Any, Literal, Protocol, runtime_checkable

import httpx
import structlog
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama
from ollama import ResponseError
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from evidence_analyzer.errors import RemoteProtocolError, RemoteTransportError
from evidence_analyzer.llm.parsing import IncrementalStepSplitter
from evidence_analyzer.models import ContentBlock, FileCategory, category_for_media_type

logger = structlog.get_logger(__name__)

Phase = Literal["extraction", "reasoning"]
ThoughtCallback = Callable[[str], None]


class LLMSettings(BaseSettings):
    """LLM configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    # Extraction needs a vision-capable model for image evidence
    extraction_model_name: str = "gemma3:latest"
    reasoning_model_name: str = "gpt-oss:20b"
    extraction_temperature: float = 0.1
    reasoning_temperature: float = 0.2
    request_timeout: int = 180
    num_ctx: int = 16384
    num_predict: int = 8192  # Max tokens to generate
    expose_reasoning: bool = True


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def create_chat_model(phase: Phase, settings: LLMSettings | None = None) -> ChatOllama:
    """Create the chat model used for one analysis phase.

    Args:
        phase: "extraction" or "reasoning".
        settings: Optional custom settings. Uses defaults if not provided.

    Returns:
        Configured ChatOllama instance.
    """
    settings = settings or get_llm_settings()
    reasoning_phase = phase == "reasoning"

    return ChatOllama(
        model=settings.reasoning_model_name if reasoning_phase else settings.extraction_model_name,
        base_url=settings.ollama_base_url,
        temperature=settings.reasoning_temperature if reasoning_phase else settings.extraction_temperature,
        num_ctx=settings.num_ctx,
        num_predict=settings.num_predict,
        reasoning=settings.expose_reasoning if reasoning_phase else None,
    )


class RemoteRequest(BaseModel):
    """One call to the remote capability."""

    phase: Phase
    system_prompt: str
    instruction: str = Field(..., description="Rendered user instruction")
    content_blocks: list[ContentBlock] = Field(default_factory=list)


class RemoteResponse(BaseModel):
    """Response text plus any exposed reasoning."""

    text: str
    thoughts: list[str] = Field(default_factory=list)
    model: str | None = None


@runtime_checkable
class RemoteCapability(Protocol):
    """Anything that can answer an extraction or reasoning request."""

    async def request(
        self,
        request: RemoteRequest,
        on_thought: ThoughtCallback | None = None,
    ) -> RemoteResponse: ...


def content_parts(block: ContentBlock) -> list[dict[str, Any]]:
    """Render a content block as LangChain message parts."""
    category = category_for_media_type(block.media_type, block.file_name)

    if category == FileCategory.IMAGE:
        return [
            {"type": "text", "text": f"File: {block.file_name} ({block.media_type})"},
            {"type": "image_url", "image_url": {"url": f"data:{block.media_type};base64,{block.data}"}},
        ]
    if category == FileCategory.DOCUMENT and block.text:
        return [{"type": "text", "text": f"File: {block.file_name} ({block.media_type})\n{block.text}"}]

    # Local models cannot take audio/video inline; describe what was attached
    return [
        {
            "type": "text",
            "text": (
                f"File: {block.file_name} ({block.media_type}, {block.byte_size} bytes). "
                "Content not inlined; rely on the extracted metadata for this file."
            ),
        }
    ]


def build_messages(request: RemoteRequest) -> list[BaseMessage]:
    """Build chat messages for a request."""
    if not request.content_blocks:
        return [SystemMessage(content=request.system_prompt), HumanMessage(content=request.instruction)]

    parts: list[dict[str, Any]] = [{"type": "text", "text": request.instruction}]
    for block in request.content_blocks:
        parts.extend(content_parts(block))
    return [SystemMessage(content=request.system_prompt), HumanMessage(content=parts)]


def _is_retryable(error: BaseException) -> bool:
    # A repeated stream would forward the same reasoning steps twice
    return isinstance(error, RemoteTransportError) and not error.partial_stream


class LangChainCapability:
    """Remote capability backed by Ollama chat models via LangChain."""

    def __init__(
        self,
        settings: LLMSettings | None = None,
        models: dict[str, Any] | None = None,
    ):
        self.settings = settings or get_llm_settings()
        self._models = dict(models or {})

    def _model_for(self, phase: Phase) -> Any:
        if phase not in self._models:
            self._models[phase] = create_chat_model(phase, self.settings)
        return self._models[phase]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def request(
        self,
        request: RemoteRequest,
        on_thought: ThoughtCallback | None = None,
    ) -> RemoteResponse:
        """Send a request, streaming reasoning to `on_thought` as steps complete.

        Raises:
            RemoteTransportError: Network failure, timeout or server error.
                Retried, unless reasoning steps were already forwarded.
            RemoteProtocolError: The model returned no content.
        """
        model = self._model_for(request.phase)
        messages = build_messages(request)

        logger.info(
            "remote_request_start",
            phase=request.phase,
            model=getattr(model, "model", None),
            content_blocks=len(request.content_blocks),
        )

        thoughts: list[str] = []
        try:
            text = await asyncio.wait_for(
                self._stream(model, messages, thoughts, on_thought),
                timeout=self.settings.request_timeout,
            )
        except (httpx.HTTPError, ResponseError, ConnectionError, TimeoutError) as e:
            logger.warning(
                "remote_request_failed",
                phase=request.phase,
                error=str(e),
                error_type=type(e).__name__,
                forwarded_steps=len(thoughts),
            )
            raise RemoteTransportError(
                f"{type(e).__name__}: {e}",
                phase=request.phase,
                partial_stream=bool(thoughts),
            ) from e

        if not text.strip():
            logger.warning("remote_empty_response", phase=request.phase)
            raise RemoteProtocolError("Empty response from model", phase=request.phase, raw_response=text)

        logger.info(
            "remote_request_complete",
            phase=request.phase,
            response_length=len(text),
            thought_steps=len(thoughts),
        )
        return RemoteResponse(text=text, thoughts=thoughts, model=getattr(model, "model", None))

    async def _stream(
        self,
        model: Any,
        messages: list[BaseMessage],
        thoughts: list[str],
        on_thought: ThoughtCallback | None,
    ) -> str:
        splitter = IncrementalStepSplitter()
        text_parts: list[str] = []

        def emit(steps: list[str]) -> None:
            for step in steps:
                thoughts.append(step)
                if on_thought:
                    on_thought(step)

        async for chunk in model.astream(messages):
            thinking = chunk.additional_kwargs.get("reasoning_content")
            if thinking:
                emit(splitter.feed(thinking))
            if isinstance(chunk.content, str):
                text_parts.append(chunk.content)

        emit(splitter.flush())
        return "".join(text_parts)


ScriptedReply = RemoteResponse | str | Exception | Callable[[RemoteRequest], Awaitable[RemoteResponse | str]]


class ScriptedCapability:
    """Replays scripted replies per phase.

    Each phase takes a reply or a list of replies consumed in order, the last
    one repeating. A reply is a RemoteResponse, raw text, an exception to
    raise, or an async callable receiving the request.
    """

    def __init__(
        self,
        replies: dict[str, ScriptedReply | list[ScriptedReply]],
        delay: float = 0.0,
    ):
        self._replies = {
            phase: list(value) if isinstance(value, list) else [value] for phase, value in replies.items()
        }
        self.delay = delay
        self.requests: list[RemoteRequest] = []

    def _next_reply(self, phase: str) -> ScriptedReply:
        queue = self._replies.get(phase)
        if not queue:
            raise RemoteProtocolError(f"No scripted reply for phase {phase}", phase=phase)
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def request(
        self,
        request: RemoteRequest,
        on_thought: ThoughtCallback | None = None,
    ) -> RemoteResponse:
        self.requests.append(request)
        reply = self._next_reply(request.phase)

        if self.delay:
            await asyncio.sleep(self.delay)

        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, RemoteResponse):
            reply = reply(request)
            if inspect.isawaitable(reply):
                reply = await reply
        if isinstance(reply, str):
            reply = RemoteResponse(text=reply, model="scripted")

        for step in reply.thoughts:
            if on_thought:
                on_thought(step)
            await asyncio.sleep(0)

        return reply
