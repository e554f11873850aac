"""Configuration helpers for the strategic brief wizard."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Optional

DEFAULT_TOPIC_MAX_QUESTIONS = 3
DEFAULT_GATEWAY_TIMEOUT = 60.0
DEFAULT_SESSION_TTL = 7200.0


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: str
    api_version: Optional[str]
    synthesis_model: Optional[str] = None


@dataclass(slots=True)
class EmailSettings:
    """SMTP settings used to deliver finished briefs."""

    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    sender: Optional[str]

    @property
    def enabled(self) -> bool:
        return bool(self.smtp_host and self.sender)


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: ModelSettings
    output_dir: Path
    topic_max_questions: int = DEFAULT_TOPIC_MAX_QUESTIONS
    gateway_timeout: float = DEFAULT_GATEWAY_TIMEOUT
    session_ttl: float = DEFAULT_SESSION_TTL
    email: Optional[EmailSettings] = None

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file."""
        _ensure_dotenv()
        provider = os.getenv("BRIEF_MODEL_PROVIDER", "openai")
        model = os.getenv("BRIEF_MODEL")
        if not model:
            raise RuntimeError("BRIEF_MODEL environment variable is required.")
        api_key = os.getenv("BRIEF_MODEL_API_KEY")
        if not api_key:
            raise RuntimeError(
                "BRIEF_MODEL_API_KEY environment variable is required."
            )
        synthesis_model = os.getenv("BRIEF_SYNTHESIS_MODEL") or None
        output_dir = Path(os.getenv("BRIEF_OUTPUT_DIR", "outputs"))
        output_dir.mkdir(parents=True, exist_ok=True)
        max_questions_raw = os.getenv(
            "BRIEF_TOPIC_MAX_QUESTIONS",
            str(DEFAULT_TOPIC_MAX_QUESTIONS),
        )
        try:
            topic_max_questions = int(max_questions_raw)
        except ValueError as exc:
            raise RuntimeError(
                "BRIEF_TOPIC_MAX_QUESTIONS must be an integer"
            ) from exc
        if topic_max_questions < 1:
            raise RuntimeError("BRIEF_TOPIC_MAX_QUESTIONS must be at least 1")
        timeout_raw = os.getenv(
            "BRIEF_GATEWAY_TIMEOUT",
            str(DEFAULT_GATEWAY_TIMEOUT),
        )
        try:
            gateway_timeout = float(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                "BRIEF_GATEWAY_TIMEOUT must be a number of seconds"
            ) from exc
        if gateway_timeout <= 0:
            raise RuntimeError("BRIEF_GATEWAY_TIMEOUT must be positive")
        ttl_raw = os.getenv("BRIEF_SESSION_TTL", str(DEFAULT_SESSION_TTL))
        try:
            session_ttl = float(ttl_raw)
        except ValueError as exc:
            raise RuntimeError(
                "BRIEF_SESSION_TTL must be a number of seconds"
            ) from exc
        if session_ttl <= 0:
            raise RuntimeError("BRIEF_SESSION_TTL must be positive")
        return cls(
            model=ModelSettings(
                provider=provider,
                model=model,
                endpoint=os.getenv("BRIEF_MODEL_ENDPOINT"),
                api_key=api_key,
                api_version=os.getenv("BRIEF_MODEL_API_VERSION"),
                synthesis_model=synthesis_model,
            ),
            output_dir=output_dir,
            topic_max_questions=topic_max_questions,
            gateway_timeout=gateway_timeout,
            session_ttl=session_ttl,
            email=_load_email_settings(),
        )


def _load_email_settings() -> EmailSettings:
    port_raw = os.getenv("BRIEF_SMTP_PORT", "587")
    try:
        smtp_port = int(port_raw)
    except ValueError as exc:
        raise RuntimeError("BRIEF_SMTP_PORT must be an integer") from exc
    return EmailSettings(
        smtp_host=os.getenv("BRIEF_SMTP_HOST") or None,
        smtp_port=smtp_port,
        smtp_user=os.getenv("BRIEF_SMTP_USER") or None,
        smtp_password=os.getenv("BRIEF_SMTP_PASSWORD") or None,
        sender=os.getenv("BRIEF_SENDER_EMAIL") or None,
    )


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
