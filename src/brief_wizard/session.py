"""Topic progression state machine for a single brief-building session."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence
from uuid import uuid4

from .config import DEFAULT_TOPIC_MAX_QUESTIONS
from .errors import InvariantViolation, SessionBusyError, ValidationFailure
from .gateway import CompletionVerdict, LLMGateway
from .topics import (
    TOPIC_PLAN,
    Speaker,
    Topic,
    TopicDefinition,
    TopicStatus,
    Transcript,
    Turn,
)

logger = logging.getLogger(__name__)

SKIPPED_QUESTION_SENTINEL = "User skipped question."
INITIAL_REQUEST_PREFIX = "Initial Request: "
SKIPPED_TOPIC_TEMPLATE = "User chose to skip the entire topic: {name}"


def _new_session_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plan_topics(plan: Sequence[TopicDefinition] = TOPIC_PLAN) -> List[Topic]:
    return [Topic.from_definition(definition) for definition in plan]


@dataclass(slots=True)
class ProgressUpdate:
    """What the presentation layer should show after an intent."""

    question: Optional[str]
    topic_id: Optional[str]
    ready_to_synthesize: bool = False


@dataclass(slots=True)
class BriefSession:
    """Aggregate state for one wizard run: topics, transcript, busy token."""

    topics: List[Topic] = field(default_factory=_plan_topics)
    transcript: Transcript = field(default_factory=Transcript)
    active_topic_id: Optional[str] = None
    busy: bool = False
    brief_text: Optional[str] = None
    session_id: str = field(default_factory=_new_session_id)
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        plan: Sequence[TopicDefinition] = TOPIC_PLAN,
    ) -> "BriefSession":
        return cls(topics=_plan_topics(plan))

    @property
    def active_topic(self) -> Optional[Topic]:
        if self.active_topic_id is None:
            return None
        return self.topic(self.active_topic_id)

    @property
    def current_question(self) -> Optional[str]:
        """Latest assistant turn while a topic is being discussed."""

        if self.active_topic_id is None:
            return None
        for turn in reversed(self.transcript.turns):
            if turn.speaker is Speaker.ASSISTANT:
                return turn.text
        return None

    def topic(self, topic_id: str) -> Topic:
        for topic in self.topics:
            if topic.id == topic_id:
                return topic
        raise KeyError(topic_id)

    def is_ready_to_synthesize(self) -> bool:
        return bool(self.topics) and all(
            topic.is_terminal for topic in self.topics
        )

    def ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusyError(
                "A language model call is still in progress for this session."
            )

    @contextmanager
    def in_flight(self) -> Iterator[None]:
        """Hold the busy token for the duration of one gateway call."""

        self.ensure_idle()
        self.busy = True
        try:
            yield
        finally:
            self.busy = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "active_topic_id": self.active_topic_id,
            "current_question": self.current_question,
            "busy": self.busy,
            "ready_to_synthesize": self.is_ready_to_synthesize(),
            "topics": [topic.to_dict() for topic in self.topics],
            "transcript": self.transcript.to_dict(),
            "brief_available": self.brief_text is not None,
        }


class TopicProgression:
    """Decides when to ask, when a topic is done, and when to synthesize."""

    def __init__(
        self,
        gateway: LLMGateway,
        *,
        max_questions: int = DEFAULT_TOPIC_MAX_QUESTIONS,
    ) -> None:
        if max_questions < 1:
            raise ValueError("max_questions must be at least 1")
        self._gateway = gateway
        self._max_questions = max_questions

    @property
    def max_questions(self) -> int:
        return self._max_questions

    def start(
        self,
        session: BriefSession,
        initial_request: str,
    ) -> ProgressUpdate:
        """Reset ``session`` and present the first topic's seed question."""

        session.ensure_idle()
        request = initial_request.strip()
        if not request:
            raise ValidationFailure("Please enter your initial request first.")
        for topic in session.topics:
            topic.status = TopicStatus.PENDING
            topic.question_count = 0
        session.active_topic_id = None
        session.brief_text = None
        session.transcript = Transcript()
        session.transcript.append_user(f"{INITIAL_REQUEST_PREFIX}{request}")
        logger.info(
            "Session %s started with %d topics",
            session.session_id,
            len(session.topics),
        )
        return self._advance(session)

    async def submit_answer(
        self,
        session: BriefSession,
        text: str,
        *,
        skipped: bool = False,
    ) -> ProgressUpdate:
        """Record an answer (or a skipped question) and pick the next step."""

        session.ensure_idle()
        topic = self._require_active_topic(session)
        answer = (text or "").strip()
        if not skipped and not answer:
            raise ValidationFailure(
                "Please provide an answer or skip the question."
            )
        user_turn = Turn(
            speaker=Speaker.USER,
            text=SKIPPED_QUESTION_SENTINEL if skipped else answer,
        )

        if topic.question_count >= self._max_questions:
            logger.info(
                "Max questions (%d) reached for topic %s; moving on.",
                self._max_questions,
                topic.id,
            )
            session.transcript.append(user_turn)
            return self._finish_topic(session, topic, TopicStatus.COMPLETED)

        staged = session.transcript.with_turns(user_turn)
        with session.in_flight():
            if not skipped:
                verdict = await self._gateway.check_completion(topic.id, staged)
                logger.debug(
                    "Completion check for %s: %s",
                    topic.id,
                    verdict.value,
                )
                if verdict is CompletionVerdict.YES:
                    question = None
                else:
                    question = await self._gateway.ask_question(
                        topic.id,
                        staged,
                        is_first_question=False,
                    )
            else:
                logger.debug(
                    "Question skipped; asking another about %s",
                    topic.id,
                )
                question = await self._gateway.ask_question(
                    topic.id,
                    staged,
                    is_first_question=False,
                )

        session.transcript.append(user_turn)
        if question is None:
            return self._finish_topic(session, topic, TopicStatus.COMPLETED)
        session.transcript.append_assistant(question)
        topic.question_count += 1
        return ProgressUpdate(question=question, topic_id=topic.id)

    async def skip_question(self, session: BriefSession) -> ProgressUpdate:
        return await self.submit_answer(session, "", skipped=True)

    def skip_topic(self, session: BriefSession) -> ProgressUpdate:
        """Abandon the active topic and move to the next one."""

        session.ensure_idle()
        topic = self._require_active_topic(session)
        session.transcript.append_user(
            SKIPPED_TOPIC_TEMPLATE.format(name=topic.display_name)
        )
        return self._finish_topic(session, topic, TopicStatus.SKIPPED)

    def _require_active_topic(self, session: BriefSession) -> Topic:
        topic = session.active_topic
        if topic is None:
            raise InvariantViolation(
                "No active topic: start the session before answering, and "
                "do not answer once it is ready to synthesize."
            )
        if topic.status is not TopicStatus.ACTIVE:
            raise InvariantViolation(
                f"Topic {topic.id} is {topic.status.value}, expected active."
            )
        return topic

    def _finish_topic(
        self,
        session: BriefSession,
        topic: Topic,
        status: TopicStatus,
    ) -> ProgressUpdate:
        topic.status = status
        session.active_topic_id = None
        logger.info("Topic %s %s", topic.id, status.value)
        return self._advance(session)

    def _advance(self, session: BriefSession) -> ProgressUpdate:
        if session.is_ready_to_synthesize():
            logger.info(
                "All topics processed for session %s; ready to synthesize.",
                session.session_id,
            )
            return ProgressUpdate(
                question=None,
                topic_id=None,
                ready_to_synthesize=True,
            )
        next_topic = next(
            (
                topic for topic in session.topics
                if topic.status is TopicStatus.PENDING
            ),
            None,
        )
        if next_topic is None:
            raise InvariantViolation(
                "No pending topic left although the session is not complete."
            )
        next_topic.status = TopicStatus.ACTIVE
        next_topic.question_count = 1
        session.active_topic_id = next_topic.id
        session.transcript.append_assistant(next_topic.seed_question)
        logger.debug("Activated topic %s", next_topic.id)
        return ProgressUpdate(
            question=next_topic.seed_question,
            topic_id=next_topic.id,
        )
