"""Command line entry-point for the strategic brief wizard."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .clarify import ClarificationOption, combine_clarifications
from .config import AppSettings
from .emailer import BriefEmailer, EmailDeliveryError, validate_email_address
from .errors import GatewayFailure, SynthesisFailed, ValidationFailure
from .exporters import BriefDocxExporter, BriefPDFExporter, ExportError
from .gateway import LLMGateway, create_gateway
from .observability import configure_logging, initialize_tracing
from .rendering import brief_filename, render_topic_progress
from .session import BriefSession, ProgressUpdate, TopicProgression
from .synthesis import BriefSynthesizer

logger = logging.getLogger(__name__)

QUIT_COMMANDS = {"/quit", "/exit"}
SKIP_QUESTION_COMMAND = "/skip"
SKIP_TOPIC_COMMAND = "/skip-topic"
PROGRESS_COMMAND = "/progress"


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="brief-wizard",
        description=(
            "Interview a stakeholder topic by topic and draft a strategic "
            "insights brief"
        ),
    )
    parser.add_argument(
        "--topic-max-questions",
        type=int,
        help=(
            "Maximum number of questions per topic before automatically "
            "moving on. Overrides BRIEF_TOPIC_MAX_QUESTIONS."
        ),
    )
    parser.add_argument(
        "--clarify",
        action="store_true",
        help="Offer clarified reframings of the initial request first.",
    )
    parser.add_argument(
        "--email",
        help="Email the finished brief to this address.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: BRIEF_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


def _parse_serve_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="brief-wizard serve",
        description="Launch the brief wizard as a FastAPI service.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the HTTP server (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8081,
        help="Port for the HTTP server (default: 8081).",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help=(
            "Optional CORS origin(s) to allow. Defaults to '*' if not provided."
        ),
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Export OpenTelemetry traces to BRIEF_OTLP_ENDPOINT.",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Run the server in auto-reload development mode.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        help="Logging level for uvicorn (default: info).",
    )
    return parser.parse_args(argv)


def _load_settings() -> AppSettings:
    try:
        return AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc


def _prompt(label: str) -> str:
    return input(label)  # noqa: PLW1514 - intentional CLI input


def _choose_clarification(options: List[ClarificationOption]) -> Optional[str]:
    """Let the user pick options by number and sub-objectives as ``2.1``."""

    print()  # noqa: T201 - CLI UX newline
    print("Clarified versions of your request:")  # noqa: T201
    for index, option in enumerate(options, start=1):
        print(f"  {index}. {option.text}")  # noqa: T201
        for sub_index, sub in enumerate(option.sub_objectives, start=1):
            print(f"     {index}.{sub_index} {sub}")  # noqa: T201
    while True:
        raw = _prompt("Select (e.g. '1 2.1'), or press Enter to keep yours: ")
        if not raw.strip():
            return None
        selected: List[int] = []
        selected_subs: dict[int, List[str]] = {}
        try:
            for token in raw.replace(",", " ").split():
                main, _, sub = token.partition(".")
                main_index = int(main) - 1
                if not 0 <= main_index < len(options):
                    raise ValueError(token)
                if sub:
                    subs = options[main_index].sub_objectives
                    sub_index = int(sub) - 1
                    if not 0 <= sub_index < len(subs):
                        raise ValueError(token)
                    selected_subs.setdefault(main_index, []).append(
                        subs[sub_index]
                    )
                else:
                    selected.append(main_index)
            return combine_clarifications(
                options,
                selected=selected,
                selected_subs=selected_subs,
            )
        except ValueError as exc:
            print(f"Invalid selection: {exc}")  # noqa: T201


async def _read_initial_request(
    gateway: LLMGateway,
    *,
    clarify: bool,
) -> Optional[str]:
    while True:
        request = _prompt("What would you like to research? ").strip()
        if request.lower() in QUIT_COMMANDS:
            return None
        if not request:
            print("Please enter your initial request first.")  # noqa: T201
            continue
        if not clarify:
            return request
        try:
            options = await gateway.clarify(request)
        except GatewayFailure as exc:
            print(f"Could not clarify the request ({exc}).")  # noqa: T201
            return request
        return _choose_clarification(options) or request


async def _run_topics(
    progression: TopicProgression,
    session: BriefSession,
    update: ProgressUpdate,
) -> bool:
    """Loop over questions until every topic is done; ``False`` on quit."""

    while not update.ready_to_synthesize:
        active = session.active_topic
        if active is not None and update.question:
            print()  # noqa: T201
            print(f"[{active.display_name}] {update.question}")  # noqa: T201
        answer = _prompt("You: ")
        command = answer.strip().lower()
        try:
            if command in QUIT_COMMANDS:
                return False
            if command == PROGRESS_COMMAND:
                for line in render_topic_progress(session):
                    print(f"  {line}")  # noqa: T201
                continue
            if command == SKIP_TOPIC_COMMAND:
                update = progression.skip_topic(session)
            elif command == SKIP_QUESTION_COMMAND:
                update = await progression.skip_question(session)
            else:
                update = await progression.submit_answer(session, answer)
        except ValidationFailure as exc:
            print(str(exc))  # noqa: T201
        except GatewayFailure as exc:
            print(  # noqa: T201
                f"The assistant could not respond ({exc}). "
                "Your answer was not recorded; please try again."
            )
    return True


def _export_brief(settings: AppSettings, brief_text: str) -> None:
    exports = (
        (BriefDocxExporter(), ".docx"),
        (BriefPDFExporter(), ".pdf"),
    )
    for exporter, suffix in exports:
        destination = settings.output_dir / brief_filename(brief_text, suffix)
        try:
            exporter.export(brief_text, destination)
        except ExportError as exc:
            logger.warning("Skipping %s export: %s", suffix, exc)
            continue
        print(f" - {destination}")  # noqa: T201


async def run_wizard(
    settings: AppSettings,
    *,
    gateway: Optional[LLMGateway] = None,
    clarify: bool = False,
    email: Optional[str] = None,
) -> Optional[str]:
    """Conduct the wizard in the terminal and return the brief text."""

    llm = gateway if gateway is not None else create_gateway(settings)
    progression = TopicProgression(
        llm,
        max_questions=settings.topic_max_questions,
    )
    synthesizer = BriefSynthesizer(llm)
    session = BriefSession.create()

    request = await _read_initial_request(llm, clarify=clarify)
    if request is None:
        return None
    update = progression.start(session, request)
    print(  # noqa: T201
        "Commands: /skip (question), /skip-topic, /progress, /quit"
    )
    if not await _run_topics(progression, session, update):
        print("Wizard stopped before the brief was generated.")  # noqa: T201
        return None

    print()  # noqa: T201
    print("All topics covered. Generating your brief...")  # noqa: T201
    while True:
        try:
            document = await synthesizer.synthesize(session)
            break
        except SynthesisFailed as exc:
            retry = _prompt(f"{exc} Retry? [Y/n] ").strip().lower()
            if retry in {"n", "no"}:
                return None

    print()  # noqa: T201
    print(document.markdown)  # noqa: T201
    print()  # noqa: T201
    print("Brief saved to:")  # noqa: T201
    _export_brief(settings, document.markdown)

    if email:
        if settings.email is None:
            print("Email sending is not configured.")  # noqa: T201
        else:
            emailer = BriefEmailer(settings.email)
            try:
                await asyncio.to_thread(
                    emailer.send_brief,
                    email,
                    document.markdown,
                )
                print(f"Brief emailed to {email}")  # noqa: T201
            except EmailDeliveryError as exc:
                print(f"Email failed: {exc}")  # noqa: T201
    return document.markdown


def run_serve_cli(argv: Optional[list[str]] = None) -> None:
    args = _parse_serve_args(argv)
    configure_logging(args.log_level)
    settings = _load_settings()
    if args.tracing:
        initialize_tracing()

    from .api import run_server

    run_server(
        settings=settings,
        host=args.host,
        port=args.port,
        allow_origins=args.allow_origin,
        reload=args.reload,
        log_level=args.log_level,
    )


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Entry-point invoked from ``python -m brief_wizard``."""

    arg_list = list(argv) if argv is not None else sys.argv[1:]
    if arg_list and arg_list[0] == "serve":
        run_serve_cli(arg_list[1:])
        return

    args = _parse_args(arg_list)
    configure_logging(args.log_level)
    settings = _load_settings()
    if args.topic_max_questions is not None:
        topic_cap = args.topic_max_questions
        if topic_cap < 1:
            raise SystemExit("--topic-max-questions must be >= 1")
        settings = replace(settings, topic_max_questions=topic_cap)
    if args.email:
        try:
            validate_email_address(args.email)
        except ValidationFailure as exc:
            raise SystemExit(str(exc)) from exc

    asyncio.run(
        run_wizard(
            settings,
            clarify=args.clarify,
            email=args.email,
        )
    )


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
