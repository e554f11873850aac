"""
Unit tests for the topic progression state machine.

Run: pytest tests/unit/test_session.py -v
"""

import pytest

from brief_wizard.errors import (
    GatewayFailure,
    InvariantViolation,
    SessionBusyError,
    ValidationFailure,
)
from brief_wizard.gateway import ChatMessage, LLMGateway
from brief_wizard.prompts import GatewayMode
from brief_wizard.session import (
    SKIPPED_QUESTION_SENTINEL,
    BriefSession,
    TopicProgression,
)
from brief_wizard.topics import TOPIC_PLAN, Speaker, TopicStatus


def _texts(session):
    return [turn.text for turn in session.transcript]


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------

class TestStart:

    def test_seeds_transcript_and_activates_first_topic(
        self, progression, session, chat_client
    ):
        update = progression.start(session, "We need to understand Gen Z")

        first = TOPIC_PLAN[0]
        assert update.question == first.seed_question
        assert update.topic_id == first.id
        assert update.ready_to_synthesize is False
        assert _texts(session) == [
            "Initial Request: We need to understand Gen Z",
            first.seed_question,
        ]
        assert session.topics[0].status is TopicStatus.ACTIVE
        assert session.topics[0].question_count == 1
        assert all(
            topic.status is TopicStatus.PENDING for topic in session.topics[1:]
        )
        assert chat_client.calls == []

    def test_request_is_trimmed(self, progression, session):
        progression.start(session, "   Gen Z insights  ")
        assert session.transcript.turns[0].text == "Initial Request: Gen Z insights"

    @pytest.mark.parametrize("request_text", ["", "   ", "\n\t"])
    def test_blank_request_is_rejected_before_mutation(
        self, progression, session, request_text
    ):
        with pytest.raises(ValidationFailure):
            progression.start(session, request_text)
        assert len(session.transcript) == 0
        assert session.active_topic_id is None

    def test_restart_resets_topics_and_brief(
        self, progression, session, chat_client
    ):
        progression.start(session, "First request")
        progression.skip_topic(session)
        session.brief_text = "# Old brief"

        progression.start(session, "Second request")

        assert session.brief_text is None
        assert session.topics[0].status is TopicStatus.ACTIVE
        assert session.topics[1].status is TopicStatus.PENDING
        assert _texts(session)[0] == "Initial Request: Second request"
        assert len(session.transcript) == 2

    def test_zero_cap_is_rejected(self, gateway):
        with pytest.raises(ValueError):
            TopicProgression(gateway, max_questions=0)


# ---------------------------------------------------------------------------
# submit_answer
# ---------------------------------------------------------------------------

class TestSubmitAnswer:

    async def test_no_verdict_fetches_follow_up_for_same_topic(
        self, progression, session, chat_client
    ):
        progression.start(session, "We need to understand Gen Z")
        chat_client.queue("NO", "Question: Which channels have you tried?")

        update = await progression.submit_answer(
            session, "They're hard to reach on TV ads"
        )

        assert update.question == "Which channels have you tried?"
        assert update.topic_id == "business_context"
        assert session.topics[0].question_count == 2
        assert session.topics[0].status is TopicStatus.ACTIVE
        assert chat_client.modes() == [
            GatewayMode.COMPLETION_CHECK,
            GatewayMode.QUESTION,
        ]
        assert _texts(session)[-2:] == [
            "They're hard to reach on TV ads",
            "Which channels have you tried?",
        ]

    async def test_yes_verdict_completes_topic_and_activates_next(
        self, progression, session, chat_client
    ):
        progression.start(session, "We need to understand Gen Z")
        chat_client.queue("YES")

        update = await progression.submit_answer(
            session, "They're hard to reach on TV ads"
        )

        second = TOPIC_PLAN[1]
        assert session.topics[0].status is TopicStatus.COMPLETED
        assert session.topics[1].status is TopicStatus.ACTIVE
        assert session.topics[1].question_count == 1
        assert update.question == second.seed_question
        assert update.topic_id == second.id
        assert chat_client.modes() == [GatewayMode.COMPLETION_CHECK]

    @pytest.mark.parametrize("verdict", ["yes", "YES", " Yes ", "yes\n"])
    async def test_yes_variants_complete_topic(
        self, progression, session, chat_client, verdict
    ):
        progression.start(session, "Gen Z")
        chat_client.queue(verdict)

        await progression.submit_answer(session, "An answer")

        assert session.topics[0].status is TopicStatus.COMPLETED

    @pytest.mark.parametrize("verdict", ["NO", "Maybe", "Yes.", "YES, mostly"])
    async def test_other_verdicts_count_as_no(
        self, progression, session, chat_client, verdict
    ):
        progression.start(session, "Gen Z")
        chat_client.queue(verdict, "What else should we know?")

        update = await progression.submit_answer(session, "An answer")

        assert session.topics[0].status is TopicStatus.ACTIVE
        assert update.question == "What else should we know?"

    async def test_cap_completes_topic_without_completion_check(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue("NO", "Second question?", "NO", "Third question?")

        await progression.submit_answer(session, "first answer")
        await progression.submit_answer(session, "second answer")
        assert session.topics[0].question_count == 3
        calls_before_cap = len(chat_client.calls)

        update = await progression.submit_answer(session, "third answer")

        assert len(chat_client.calls) == calls_before_cap == 4
        assert session.topics[0].status is TopicStatus.COMPLETED
        assert session.topics[0].question_count == 3
        assert update.topic_id == TOPIC_PLAN[1].id
        assert "third answer" in _texts(session)

    async def test_custom_cap_of_one_never_calls_gateway(
        self, gateway, session, chat_client
    ):
        progression = TopicProgression(gateway, max_questions=1)
        progression.start(session, "Gen Z")

        for _ in TOPIC_PLAN:
            await progression.submit_answer(session, "short answer")

        assert session.is_ready_to_synthesize()
        assert chat_client.calls == []

    async def test_cap_is_never_exceeded(self, progression, session, chat_client):
        progression.start(session, "Gen Z")
        chat_client.queue(*(["NO", "Another?"] * 20))

        while not session.is_ready_to_synthesize():
            await progression.submit_answer(session, "answer")
            for topic in session.topics:
                assert topic.question_count <= progression.max_questions

    @pytest.mark.parametrize("answer", ["", "   ", "\n"])
    async def test_blank_answer_is_rejected_before_mutation(
        self, progression, session, chat_client, answer
    ):
        progression.start(session, "Gen Z")
        before = _texts(session)

        with pytest.raises(ValidationFailure):
            await progression.submit_answer(session, answer)

        assert _texts(session) == before
        assert chat_client.calls == []

    async def test_answer_before_start_is_an_invariant_violation(
        self, progression, session
    ):
        with pytest.raises(InvariantViolation):
            await progression.submit_answer(session, "hello")

    async def test_answer_after_all_topics_is_an_invariant_violation(
        self, progression, session
    ):
        progression.start(session, "Gen Z")
        for _ in TOPIC_PLAN:
            progression.skip_topic(session)

        with pytest.raises(InvariantViolation):
            await progression.submit_answer(session, "late answer")


# ---------------------------------------------------------------------------
# skip_question
# ---------------------------------------------------------------------------

class TestSkipQuestion:

    async def test_skip_asks_again_without_completion_check(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue("What budget do you have?")
        before = len(session.transcript)

        update = await progression.skip_question(session)

        assert chat_client.modes() == [GatewayMode.QUESTION]
        assert len(session.transcript) == before + 2
        user_turn = session.transcript.turns[before]
        assert user_turn.speaker is Speaker.USER
        assert user_turn.text == SKIPPED_QUESTION_SENTINEL
        assert update.question == "What budget do you have?"
        assert session.topics[0].status is TopicStatus.ACTIVE
        assert session.topics[0].question_count == 2

    async def test_skip_at_cap_completes_topic_without_calls(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue("Second?", "Third?")
        await progression.skip_question(session)
        await progression.skip_question(session)
        calls = len(chat_client.calls)

        update = await progression.skip_question(session)

        assert len(chat_client.calls) == calls
        assert session.topics[0].status is TopicStatus.COMPLETED
        assert _texts(session)[-2] == SKIPPED_QUESTION_SENTINEL
        assert update.topic_id == TOPIC_PLAN[1].id


# ---------------------------------------------------------------------------
# skip_topic
# ---------------------------------------------------------------------------

class TestSkipTopic:

    def test_skip_topic_records_message_and_advances(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")

        update = progression.skip_topic(session)

        assert session.topics[0].status is TopicStatus.SKIPPED
        assert (
            "User chose to skip the entire topic: Business Context"
            in _texts(session)
        )
        assert update.topic_id == TOPIC_PLAN[1].id
        assert chat_client.calls == []

    def test_skipping_every_topic_makes_session_ready(
        self, progression, session, chat_client
    ):
        progression.start(session, "We need to understand Gen Z")

        activated = [session.active_topic_id]
        update = None
        for _ in TOPIC_PLAN:
            update = progression.skip_topic(session)
            activated.append(update.topic_id)

        assert update is not None and update.ready_to_synthesize
        assert update.question is None
        assert session.is_ready_to_synthesize()
        assert session.active_topic_id is None
        assert activated[:-1] == [definition.id for definition in TOPIC_PLAN]
        assert chat_client.calls == []
        assert len(session.transcript) == 1 + 2 * len(TOPIC_PLAN)

    def test_skip_topic_when_ready_is_an_invariant_violation(
        self, progression, session
    ):
        progression.start(session, "Gen Z")
        for _ in TOPIC_PLAN:
            progression.skip_topic(session)

        with pytest.raises(InvariantViolation):
            progression.skip_topic(session)


# ---------------------------------------------------------------------------
# Failure atomicity and the busy token
# ---------------------------------------------------------------------------

class TestFailureAtomicity:

    async def test_failed_completion_check_leaves_state_unchanged(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue(RuntimeError("upstream exploded"))
        before = _texts(session)

        with pytest.raises(GatewayFailure):
            await progression.submit_answer(session, "an answer")

        assert _texts(session) == before
        assert session.topics[0].question_count == 1
        assert session.topics[0].status is TopicStatus.ACTIVE
        assert session.busy is False

    async def test_failed_follow_up_question_leaves_state_unchanged(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue("NO", "")
        before = _texts(session)

        with pytest.raises(GatewayFailure):
            await progression.submit_answer(session, "an answer")

        assert _texts(session) == before
        assert session.topics[0].question_count == 1

    async def test_same_action_can_be_retried(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        chat_client.queue(RuntimeError("timeout-ish"), "YES")

        with pytest.raises(GatewayFailure):
            await progression.submit_answer(session, "an answer")
        await progression.submit_answer(session, "an answer")

        assert session.topics[0].status is TopicStatus.COMPLETED
        assert _texts(session).count("an answer") == 1


class _BusyProbeClient:
    """Records whether the session was busy while the call was in flight."""

    def __init__(self, session: BriefSession) -> None:
        self._session = session
        self.busy_seen = []

    async def complete(self, messages, *, temperature=None, model_id=None):
        self.busy_seen.append(self._session.busy)
        return ChatMessage(role="assistant", content="YES")


class TestBusyToken:

    async def test_session_is_busy_only_during_the_call(self, session):
        client = _BusyProbeClient(session)
        progression = TopicProgression(LLMGateway(client))
        progression.start(session, "Gen Z")

        await progression.submit_answer(session, "an answer")

        assert client.busy_seen == [True]
        assert session.busy is False

    async def test_intents_are_rejected_while_busy(
        self, progression, session, chat_client
    ):
        progression.start(session, "Gen Z")
        before = _texts(session)
        session.busy = True

        with pytest.raises(SessionBusyError):
            await progression.submit_answer(session, "an answer")
        with pytest.raises(SessionBusyError):
            await progression.skip_question(session)
        with pytest.raises(SessionBusyError):
            progression.skip_topic(session)
        with pytest.raises(SessionBusyError):
            progression.start(session, "Another request")

        assert _texts(session) == before
        assert chat_client.calls == []


# ---------------------------------------------------------------------------
# BriefSession helpers
# ---------------------------------------------------------------------------

class TestBriefSession:

    def test_current_question_tracks_latest_assistant_turn(
        self, progression, session
    ):
        assert session.current_question is None
        progression.start(session, "Gen Z")
        assert session.current_question == TOPIC_PLAN[0].seed_question

    def test_to_dict_exposes_progress(self, progression, session):
        progression.start(session, "Gen Z")

        payload = session.to_dict()

        assert payload["active_topic_id"] == "business_context"
        assert payload["ready_to_synthesize"] is False
        assert len(payload["topics"]) == len(TOPIC_PLAN)
        assert payload["transcript"][0] == {
            "speaker": "user",
            "text": "Initial Request: Gen Z",
        }

    def test_unknown_topic_lookup_raises_key_error(self, session):
        with pytest.raises(KeyError):
            session.topic("not_a_topic")
