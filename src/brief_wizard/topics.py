"""Topic plan and transcript primitives for the brief wizard."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Tuple


class TopicStatus(str, Enum):
    """Lifecycle of a topic: pending -> active -> completed | skipped."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TopicStatus.COMPLETED, TopicStatus.SKIPPED)


class Speaker(str, Enum):
    """Author of a transcript turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class TopicDefinition:
    """Static description of one brief section the wizard asks about."""

    id: str
    display_name: str
    seed_question: str


TOPIC_PLAN: Tuple[TopicDefinition, ...] = (
    TopicDefinition(
        id="business_context",
        display_name="Business Context",
        seed_question=(
            "Let's start with the business context. What specific business "
            "challenge or opportunity are you trying to address with this "
            "project?"
        ),
    ),
    TopicDefinition(
        id="current_understanding",
        display_name="Current Understanding",
        seed_question=(
            "Moving on to what's already known. What do you already "
            "understand about this topic or audience?"
        ),
    ),
    TopicDefinition(
        id="audience_definition",
        display_name="Audience Definition",
        seed_question=(
            "Now, let's define the audience. Who specifically are you trying "
            "to understand better (demographics, behaviors, etc.)?"
        ),
    ),
    TopicDefinition(
        id="success_metrics",
        display_name="Success Metrics",
        seed_question=(
            "Thinking about outcomes, how will you measure the success of "
            "this research or strategy work?"
        ),
    ),
    TopicDefinition(
        id="timeline_constraints",
        display_name="Timeline & Constraints",
        seed_question=(
            "What are the practical constraints? Please describe the "
            "timeline and any budget limitations."
        ),
    ),
    TopicDefinition(
        id="previous_research",
        display_name="Previous Research & Gaps",
        seed_question=(
            "Has any previous research been done on this? If so, what was "
            "learned, and what gaps remain?"
        ),
    ),
    TopicDefinition(
        id="stakeholders_distribution",
        display_name="Stakeholders & Distribution",
        seed_question=(
            "Finally, who will use these insights, and what format would be "
            "most useful for them?"
        ),
    ),
)


def topic_label(topic_id: str) -> str:
    """Human-readable form of a topic id as used inside prompts."""

    return topic_id.replace("_", " ")


@dataclass(slots=True)
class Topic:
    """Mutable progress record for a topic within one session."""

    id: str
    display_name: str
    seed_question: str
    status: TopicStatus = TopicStatus.PENDING
    question_count: int = 0

    @classmethod
    def from_definition(cls, definition: TopicDefinition) -> "Topic":
        return cls(
            id=definition.id,
            display_name=definition.display_name,
            seed_question=definition.seed_question,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "status": self.status.value,
            "question_count": self.question_count,
        }


@dataclass(frozen=True, slots=True)
class Turn:
    """A single utterance in the conversation."""

    speaker: Speaker
    text: str

    @property
    def label(self) -> str:
        return "User" if self.speaker is Speaker.USER else "Assistant"


def _empty_turns() -> List[Turn]:
    return []


@dataclass(slots=True)
class Transcript:
    """Append-only record of the conversation, the LLM's only memory."""

    _turns: List[Turn] = field(default_factory=_empty_turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def append_user(self, text: str) -> Turn:
        turn = Turn(speaker=Speaker.USER, text=text)
        self._turns.append(turn)
        return turn

    def append_assistant(self, text: str) -> Turn:
        turn = Turn(speaker=Speaker.ASSISTANT, text=text)
        self._turns.append(turn)
        return turn

    def with_turns(self, *turns: Turn) -> "Transcript":
        """Return a copy with ``turns`` appended, leaving this one untouched."""

        return Transcript(list(self._turns) + list(turns))

    def as_text(self) -> str:
        """Flatten the transcript into ``Speaker: text`` lines."""

        return "\n".join(f"{turn.label}: {turn.text}" for turn in self._turns)

    def to_dict(self) -> List[Dict[str, str]]:
        return [
            {"speaker": turn.speaker.value, "text": turn.text}
            for turn in self._turns
        ]
