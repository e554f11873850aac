"""FastAPI service that drives brief wizard sessions over HTTP."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from starlette.responses import HTMLResponse, PlainTextResponse, Response

from .clarify import ClarificationOption, combine_clarifications
from .config import DEFAULT_SESSION_TTL, AppSettings
from .emailer import (
    BriefEmailer,
    deliver_brief_in_background,
    validate_email_address,
)
from .errors import (
    BriefWizardError,
    GatewayFailure,
    InvariantViolation,
    SessionBusyError,
    SynthesisFailed,
    ValidationFailure,
)
from .exporters import BriefDocxExporter, BriefPDFExporter, ExportError
from .gateway import LLMGateway, create_gateway
from .rendering import (
    brief_filename,
    brief_plain_text,
    render_brief_html,
    render_topic_progress,
)
from .session import BriefSession, ProgressUpdate, TopicProgression
from .synthesis import BriefSynthesizer

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StartRequest(BaseModel):
    initial_request: str


class AnswerRequest(BaseModel):
    text: str


class ClarifyRequest(BaseModel):
    initial_request: str


class ClarificationOptionModel(BaseModel):
    text: str
    sub_objectives: List[str] = Field(default_factory=list)


class CombineRequest(BaseModel):
    options: List[ClarificationOptionModel]
    selected: List[int] = Field(default_factory=list)
    selected_subs: Dict[int, List[str]] = Field(default_factory=dict)


class EmailRequest(BaseModel):
    recipient: str


@dataclass(slots=True)
class _SessionEntry:
    session: BriefSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_seen: datetime = field(default_factory=_utcnow)

    @property
    def in_use(self) -> bool:
        return self.lock.locked() or self.session.busy


class SessionRegistry:
    """In-process store of live sessions, each guarded by its own lock.

    Sessions idle for longer than ``ttl_seconds`` are dropped the next time a
    session is added. Sessions with a request in progress are never dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._entries: Dict[str, _SessionEntry] = {}
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def add(self, session: BriefSession) -> BriefSession:
        self.sweep()
        self._entries[session.session_id] = _SessionEntry(
            session=session,
            last_seen=self._clock(),
        )
        return session

    def get(self, session_id: str) -> _SessionEntry:
        entry = self._entries.get(session_id)
        if entry is None:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown session '{session_id}'.",
            )
        entry.last_seen = self._clock()
        return entry

    def get_idle(self, session_id: str) -> _SessionEntry:
        """Return the entry, or 409 while another request holds the session."""

        entry = self.get(session_id)
        if entry.in_use:
            raise HTTPException(
                status_code=409,
                detail="A request for this session is still in progress.",
            )
        return entry

    def remove(self, session_id: str) -> None:
        self.get_idle(session_id)
        del self._entries[session_id]
        logger.info("Removed session %s", session_id)

    def sweep(self) -> int:
        """Drop idle sessions past the TTL and return how many were dropped."""

        cutoff = self._clock() - self._ttl
        expired = [
            session_id
            for session_id, entry in self._entries.items()
            if entry.last_seen < cutoff and not entry.in_use
        ]
        for session_id in expired:
            del self._entries[session_id]
        if expired:
            logger.info("Expired %d idle session(s)", len(expired))
        return len(expired)

    @asynccontextmanager
    async def acquire(self, session_id: str) -> AsyncIterator[BriefSession]:
        """Serialize intents for one session; a second caller gets 409."""

        entry = self.get_idle(session_id)
        async with entry.lock:
            yield entry.session


def _status_for(exc: BriefWizardError) -> int:
    if isinstance(exc, ValidationFailure):
        return 400
    if isinstance(exc, (InvariantViolation, SessionBusyError)):
        return 409
    if isinstance(exc, (GatewayFailure, SynthesisFailed)):
        return 502
    return 500


def _http_error(exc: BriefWizardError) -> HTTPException:
    status = _status_for(exc)
    if status >= 500:
        logger.warning("Request failed with %s: %s", status, exc)
    return HTTPException(status_code=status, detail=str(exc))


def _progress_payload(
    session: BriefSession,
    update: Optional[ProgressUpdate] = None,
) -> Dict[str, Any]:
    payload = session.to_dict()
    payload["progress"] = render_topic_progress(session)
    if update is not None:
        payload["question"] = update.question
        payload["topic_id"] = update.topic_id
    else:
        payload["question"] = session.current_question
        payload["topic_id"] = session.active_topic_id
    return payload


def _require_brief(session: BriefSession) -> str:
    if session.brief_text is None:
        raise HTTPException(
            status_code=409,
            detail="No brief has been generated for this session yet.",
        )
    return session.brief_text


def _attachment(payload: bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=payload,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(
    settings: AppSettings,
    *,
    gateway: Optional[LLMGateway] = None,
    emailer: Optional[BriefEmailer] = None,
    allow_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Create the FastAPI app exposing the wizard as a small REST API."""

    app = FastAPI(title="Strategic Brief Wizard")

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    llm = gateway if gateway is not None else create_gateway(settings)
    progression = TopicProgression(
        llm,
        max_questions=settings.topic_max_questions,
    )
    synthesizer = BriefSynthesizer(llm)
    if emailer is None and settings.email is not None:
        emailer = BriefEmailer(settings.email)
    registry = SessionRegistry(ttl_seconds=settings.session_ttl)
    docx_exporter = BriefDocxExporter()
    pdf_exporter = BriefPDFExporter()

    app.state.registry = registry

    @app.post("/sessions", status_code=201)
    async def start_session(payload: StartRequest) -> Dict[str, Any]:
        session = BriefSession.create()
        try:
            update = progression.start(session, payload.initial_request)
        except BriefWizardError as exc:
            raise _http_error(exc) from exc
        registry.add(session)
        return _progress_payload(session, update)

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> Dict[str, Any]:
        return _progress_payload(registry.get(session_id).session)

    @app.delete("/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str) -> Response:
        registry.remove(session_id)
        return Response(status_code=204)

    @app.post("/sessions/{session_id}/answer")
    async def submit_answer(
        session_id: str,
        payload: AnswerRequest,
    ) -> Dict[str, Any]:
        async with registry.acquire(session_id) as session:
            try:
                update = await progression.submit_answer(session, payload.text)
            except BriefWizardError as exc:
                raise _http_error(exc) from exc
            return _progress_payload(session, update)

    @app.post("/sessions/{session_id}/skip-question")
    async def skip_question(session_id: str) -> Dict[str, Any]:
        async with registry.acquire(session_id) as session:
            try:
                update = await progression.skip_question(session)
            except BriefWizardError as exc:
                raise _http_error(exc) from exc
            return _progress_payload(session, update)

    @app.post("/sessions/{session_id}/skip-topic")
    async def skip_topic(session_id: str) -> Dict[str, Any]:
        async with registry.acquire(session_id) as session:
            try:
                update = progression.skip_topic(session)
            except BriefWizardError as exc:
                raise _http_error(exc) from exc
            return _progress_payload(session, update)

    @app.post("/sessions/{session_id}/brief")
    async def generate_brief(session_id: str) -> Dict[str, Any]:
        async with registry.acquire(session_id) as session:
            try:
                document = await synthesizer.synthesize(session)
            except BriefWizardError as exc:
                raise _http_error(exc) from exc
        return {
            "session_id": session_id,
            "title": document.display_title,
            "markdown": document.markdown,
            "sections": [section.heading for section in document.sections],
            "missing_sections": document.missing_sections(),
        }

    @app.get("/sessions/{session_id}/brief.html", response_class=HTMLResponse)
    async def brief_html(session_id: str) -> HTMLResponse:
        brief = _require_brief(registry.get(session_id).session)
        return HTMLResponse(render_brief_html(brief))

    @app.get("/sessions/{session_id}/brief.txt", response_class=PlainTextResponse)
    async def brief_text(session_id: str) -> PlainTextResponse:
        brief = _require_brief(registry.get(session_id).session)
        return PlainTextResponse(brief_plain_text(brief))

    @app.get("/sessions/{session_id}/brief.docx")
    async def brief_docx(session_id: str) -> Response:
        brief = _require_brief(registry.get(session_id).session)
        try:
            payload = docx_exporter.render(brief)
        except ExportError as exc:
            logger.exception("DOCX export failed for session %s", session_id)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return _attachment(payload, brief_filename(brief, ".docx"), DOCX_MEDIA_TYPE)

    @app.get("/sessions/{session_id}/brief.pdf")
    async def brief_pdf(session_id: str) -> Response:
        brief = _require_brief(registry.get(session_id).session)
        try:
            payload = pdf_exporter.render(brief)
        except ExportError as exc:
            logger.exception("PDF export failed for session %s", session_id)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return _attachment(payload, brief_filename(brief, ".pdf"), "application/pdf")

    @app.post("/sessions/{session_id}/brief/email", status_code=202)
    async def email_brief(
        session_id: str,
        payload: EmailRequest,
        background_tasks: BackgroundTasks,
    ) -> Dict[str, str]:
        session = registry.get_idle(session_id).session
        if emailer is None or not emailer.enabled:
            raise HTTPException(
                status_code=503,
                detail="Email sending is not configured on the server.",
            )
        try:
            recipient = validate_email_address(payload.recipient)
        except ValidationFailure as exc:
            raise _http_error(exc) from exc
        if session.brief_text is None and not session.is_ready_to_synthesize():
            raise HTTPException(
                status_code=409,
                detail="Finish or skip every topic before emailing the brief.",
            )
        background_tasks.add_task(
            deliver_brief_in_background,
            session=session,
            synthesizer=synthesizer,
            emailer=emailer,
            recipient=recipient,
        )
        logger.info("Queued brief email for session %s", session_id)
        return {
            "status": "queued",
            "message": (
                "Brief generation and email sending initiated. "
                "You should receive it shortly."
            ),
        }

    @app.post("/clarify")
    async def clarify(payload: ClarifyRequest) -> Dict[str, Any]:
        request = payload.initial_request.strip()
        if not request:
            raise HTTPException(
                status_code=400,
                detail="Please enter your initial request first.",
            )
        try:
            options = await llm.clarify(request)
        except BriefWizardError as exc:
            raise _http_error(exc) from exc
        return {
            "options": [
                {"text": option.text, "sub_objectives": option.sub_objectives}
                for option in options
            ]
        }

    @app.post("/clarify/combine")
    async def combine(payload: CombineRequest) -> Dict[str, str]:
        options = [
            ClarificationOption(
                text=option.text,
                sub_objectives=list(option.sub_objectives),
            )
            for option in payload.options
        ]
        try:
            combined = combine_clarifications(
                options,
                selected=payload.selected,
                selected_subs=payload.selected_subs,
            )
        except BriefWizardError as exc:
            raise _http_error(exc) from exc
        return {"initial_request": combined}

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - simple health probe
        return {"status": "ok"}

    return app


def run_server(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8081,
    allow_origins: Sequence[str] | None = None,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """Start the brief wizard FastAPI server."""

    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
