"""Shared fixtures: a scripted chat completer stands in for the model."""

from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Iterable, List, Optional, Union

import pytest

# Allow running the suite from a checkout without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from brief_wizard.config import AppSettings, EmailSettings, ModelSettings
from brief_wizard.gateway import ChatMessage, LLMGateway
from brief_wizard.prompts import MODE_TEMPERATURES, GatewayMode
from brief_wizard.session import BriefSession, TopicProgression

Scripted = Union[str, BaseException]

_MODES_BY_TEMPERATURE = {
    temperature: mode for mode, temperature in MODE_TEMPERATURES.items()
}


@dataclass
class RecordedCall:
    prompt: str
    temperature: Optional[float]
    model_id: Optional[str]

    @property
    def mode(self) -> GatewayMode:
        return _MODES_BY_TEMPERATURE[self.temperature]


class ScriptedChatClient:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses: Iterable[Scripted] = ()) -> None:
        self._responses: Deque[Scripted] = deque(responses)
        self.calls: List[RecordedCall] = []

    def queue(self, *responses: Scripted) -> None:
        self._responses.extend(responses)

    @property
    def pending(self) -> int:
        return len(self._responses)

    def modes(self) -> List[GatewayMode]:
        return [call.mode for call in self.calls]

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
        model_id: Optional[str] = None,
    ) -> ChatMessage:
        prompt = "\n".join(message.content for message in messages)
        self.calls.append(
            RecordedCall(prompt=prompt, temperature=temperature, model_id=model_id)
        )
        if not self._responses:
            raise AssertionError("ScriptedChatClient ran out of responses")
        response = self._responses.popleft()
        if isinstance(response, BaseException):
            raise response
        return ChatMessage(role="assistant", content=response)


@pytest.fixture
def chat_client() -> ScriptedChatClient:
    return ScriptedChatClient()


@pytest.fixture
def gateway(chat_client: ScriptedChatClient) -> LLMGateway:
    return LLMGateway(
        chat_client,
        model="chat-model",
        synthesis_model="brief-model",
        timeout=5,
    )


@pytest.fixture
def progression(gateway: LLMGateway) -> TopicProgression:
    return TopicProgression(gateway, max_questions=3)


@pytest.fixture
def session() -> BriefSession:
    return BriefSession.create()


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        model=ModelSettings(
            provider="openai",
            model="chat-model",
            endpoint=None,
            api_key="test-key",
            api_version=None,
            synthesis_model="brief-model",
        ),
        output_dir=tmp_path,
        email=EmailSettings(
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="mailer",
            smtp_password="secret",
            sender="briefs@example.com",
        ),
    )


SAMPLE_BRIEF = """# Strategic Brief: Gen Z Snack Loyalty

## Business Context
Snack sales to Gen Z fell 12% last year.

## Project Objectives
- Understand why Gen Z shoppers switch brands
  - Identify the moments that trigger switching
- Prioritise loyalty levers

## Target Audience
Gen Z shoppers aged 18-24 in urban areas.

## Key Questions to Explore
- What drives first purchase?
- What drives repeat purchase?
- Which channels shape perception?

## Current Knowledge & Gaps
Basic demographics are known; motivations are not.

## Success Metrics
Repeat purchase rate improves by 5 points.

## Timeline & Deliverables
Six weeks, delivered as a slide deck.

## Stakeholders & Distribution
Brand and marketing leadership.

## Methodological Considerations
Qualitative interviews followed by a quantitative survey.
"""


@pytest.fixture
def sample_brief() -> str:
    return SAMPLE_BRIEF
