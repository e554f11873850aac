"""Logging and tracing setup for the brief wizard entry points."""

from __future__ import annotations

import logging
import os
from typing import Optional

from agent_framework.observability import setup_observability

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_tracing_ready = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler once; ``BRIEF_LOG_LEVEL`` sets the default."""

    name = (level or os.getenv("BRIEF_LOG_LEVEL", "INFO")).strip().upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
    )


def _capture_prompts() -> bool:
    # Prompts carry user answers verbatim, so spans omit them unless asked.
    raw = os.getenv("BRIEF_TRACING_CAPTURE_SENSITIVE", "false").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def initialize_tracing(endpoint: Optional[str] = None) -> bool:
    """Export agent framework spans to an OTLP collector.

    Returns ``True`` only on the call that actually configured tracing.
    """

    global _tracing_ready
    if _tracing_ready:
        return False

    otlp_endpoint = (
        endpoint or os.getenv("BRIEF_OTLP_ENDPOINT", "http://localhost:4317")
    ).strip()
    if not otlp_endpoint:
        logging.info("Tracing skipped because no OTLP endpoint is configured.")
        return False

    try:
        setup_observability(
            otlp_endpoint=otlp_endpoint,
            enable_sensitive_data=_capture_prompts(),
        )
    except Exception as exc:  # noqa: BLE001 - tracing must not block serving
        logging.warning("Tracing initialization failed: %s", exc)
        return False

    _tracing_ready = True
    logging.info("Tracing initialized with OTLP endpoint %s", otlp_endpoint)
    return True
