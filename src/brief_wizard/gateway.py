"""LLM gateway: mode-aware completion calls with boundary decoding.

The gateway is the only place that talks to the chat client. It applies the
timeout, turns every upstream problem into :class:`GatewayFailure`, and
decodes raw model text into the values the state machine consumes, so no raw
``"YES"``/``"NO"`` strings travel further than this module.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol

from .clarify import ClarificationOption, parse_clarification_options
from .errors import GatewayFailure
from .prompts import (
    GatewayMode,
    PromptRequest,
    build_clarification_prompt,
    build_completion_check_prompt,
    build_question_prompt,
    build_synthesis_prompt,
)
from .topics import Transcript

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import AppSettings

logger = logging.getLogger(__name__)

_QUESTION_LABEL_RE = re.compile(
    r"^[\"'“‘]?\s*(?:next\s+)?question\s*:\s*",
    re.IGNORECASE,
)
_QUOTES = "\"'“”‘’"


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str


class ChatCompleter(Protocol):
    """Anything able to complete a chat conversation asynchronously."""

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
        model_id: Optional[str] = None,
    ) -> ChatMessage:
        ...


class CompletionVerdict(str, Enum):
    """Decoded answer of a topic completion check."""

    YES = "YES"
    NO = "NO"

    @classmethod
    def from_response(cls, raw: str) -> "CompletionVerdict":
        """Decode model text, treating anything but YES/NO as NO."""

        normalized = raw.strip().upper()
        if normalized == cls.YES.value:
            return cls.YES
        if normalized != cls.NO.value:
            logger.warning(
                "Unexpected completion check result %r; defaulting to NO.",
                raw,
            )
        return cls.NO


def clean_question_text(raw: str) -> str:
    """Strip a leading ``Question:`` label and surrounding quotes."""

    text = _QUESTION_LABEL_RE.sub("", raw.strip(), count=1).strip()
    if text[:1] and text[0] in _QUOTES:
        text = text[1:]
    if text[-1:] and text[-1] in _QUOTES:
        text = text[:-1]
    return text.strip()


def strip_markdown_fence(raw: str) -> str:
    """Remove a wrapping ```markdown fence the model sometimes adds."""

    text = raw.strip()
    if not text.startswith("```"):
        return text
    lines = text.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


class LLMGateway:
    """Dispatches prompt requests and decodes mode-specific responses."""

    def __init__(
        self,
        client: ChatCompleter,
        *,
        model: Optional[str] = None,
        synthesis_model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self._model = model
        self._synthesis_model = synthesis_model or model
        self._timeout = timeout

    def model_for(self, mode: GatewayMode) -> Optional[str]:
        if mode is GatewayMode.SYNTHESIZE:
            return self._synthesis_model
        return self._model

    async def complete(self, request: PromptRequest) -> str:
        """Run one completion and return its trimmed, non-empty text."""

        mode = request.mode.value
        messages: List[ChatMessage] = [
            ChatMessage(role="user", content=request.prompt)
        ]
        logger.debug(
            "Calling LLM (mode=%s, model=%s, temperature=%s)",
            mode,
            self.model_for(request.mode),
            request.temperature,
        )
        try:
            response = await asyncio.wait_for(
                self._client.complete(
                    messages,
                    temperature=request.temperature,
                    model_id=self.model_for(request.mode),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "LLM call timed out after %ss (mode=%s)",
                self._timeout,
                mode,
            )
            raise GatewayFailure(
                f"The language model did not answer within {self._timeout}s.",
                mode=mode,
            ) from exc
        except GatewayFailure:
            raise
        except Exception as exc:  # noqa: BLE001 # pylint: disable=broad-except
            logger.warning("LLM call failed (mode=%s): %s", mode, exc)
            raise GatewayFailure(
                f"The language model request failed: {exc}",
                mode=mode,
            ) from exc
        text = (response.content or "").strip()
        if not text:
            logger.warning("LLM returned empty content (mode=%s)", mode)
            raise GatewayFailure(
                "No content received from the language model.",
                mode=mode,
            )
        return text

    async def ask_question(
        self,
        topic_id: str,
        transcript: Transcript,
        *,
        is_first_question: bool = False,
    ) -> str:
        raw = await self.complete(
            build_question_prompt(topic_id, transcript, is_first_question)
        )
        question = clean_question_text(raw)
        if not question:
            raise GatewayFailure(
                "The language model returned an empty question.",
                mode=GatewayMode.QUESTION.value,
            )
        return question

    async def check_completion(
        self,
        topic_id: str,
        transcript: Transcript,
    ) -> CompletionVerdict:
        raw = await self.complete(
            build_completion_check_prompt(topic_id, transcript)
        )
        return CompletionVerdict.from_response(raw)

    async def synthesize(self, transcript: Transcript) -> str:
        raw = await self.complete(build_synthesis_prompt(transcript))
        return strip_markdown_fence(raw)

    async def clarify(self, raw_request: str) -> List[ClarificationOption]:
        raw = await self.complete(build_clarification_prompt(raw_request))
        options = parse_clarification_options(raw)
        if not options:
            raise GatewayFailure(
                "The language model returned no clarification options.",
                mode=GatewayMode.CLARIFY.value,
            )
        return options


def create_gateway(settings: "AppSettings") -> LLMGateway:
    """Build a gateway backed by the Microsoft Agent Framework client."""

    from .maf_client import MAFChatClient

    return LLMGateway(
        MAFChatClient(settings.model),
        model=settings.model.model,
        synthesis_model=settings.model.synthesis_model,
        timeout=settings.gateway_timeout,
    )
