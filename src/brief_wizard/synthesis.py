"""Brief synthesis and parsing of the generated Markdown document."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import GatewayFailure, InvariantViolation, SynthesisFailed
from .gateway import LLMGateway
from .session import BriefSession

logger = logging.getLogger(__name__)

BRIEF_TITLE_PREFIX = "Strategic Brief:"
DEFAULT_BRIEF_TITLE = "Strategic Insights Brief"

BRIEF_SECTIONS: Tuple[str, ...] = (
    "Business Context",
    "Project Objectives",
    "Target Audience",
    "Key Questions to Explore",
    "Current Knowledge & Gaps",
    "Success Metrics",
    "Timeline & Deliverables",
    "Stakeholders & Distribution",
    "Methodological Considerations",
)

_TITLE_RE = re.compile(r"^#\s+(?P<title>.+?)\s*$", re.MULTILINE)
_SECTION_RE = re.compile(r"^##\s+(?P<heading>.+?)\s*$")
_TRAILER_RE = re.compile(r"^\s*\**\s*generated brief:?\s*\**\s*$", re.IGNORECASE)


def _empty_sections() -> List["BriefSection"]:
    return []


@dataclass(slots=True)
class BriefSection:
    heading: str
    body: str

    def bullets(self) -> List[str]:
        items: List[str] = []
        for line in self.body.splitlines():
            stripped = line.strip()
            if stripped.startswith(("- ", "* ")):
                items.append(stripped[2:].strip())
        return items


@dataclass(slots=True)
class BriefDocument:
    """Parsed view of a synthesized brief."""

    title: str
    markdown: str
    sections: List[BriefSection] = field(default_factory=_empty_sections)

    @property
    def display_title(self) -> str:
        """Title without the ``Strategic Brief:`` prefix."""

        if self.title.lower().startswith(BRIEF_TITLE_PREFIX.lower()):
            trimmed = self.title[len(BRIEF_TITLE_PREFIX):].strip()
            return trimmed or DEFAULT_BRIEF_TITLE
        return self.title

    def section(self, heading: str) -> Optional[BriefSection]:
        lookup = heading.strip().lower()
        for section in self.sections:
            if section.heading.lower() == lookup:
                return section
        return None

    def missing_sections(self) -> List[str]:
        return [name for name in BRIEF_SECTIONS if self.section(name) is None]


def extract_title(markdown: str) -> Optional[str]:
    match = _TITLE_RE.search(markdown)
    if match is None:
        return None
    return match.group("title").strip()


def parse_brief(markdown: str) -> BriefDocument:
    """Split brief Markdown into its title and ``##`` sections."""

    lines = [
        line for line in markdown.strip().splitlines()
        if not _TRAILER_RE.match(line)
    ]
    cleaned = "\n".join(lines).strip()
    title = extract_title(cleaned) or DEFAULT_BRIEF_TITLE
    sections: List[BriefSection] = []
    heading: Optional[str] = None
    buffer: List[str] = []
    for line in lines:
        match = _SECTION_RE.match(line)
        if match:
            if heading is not None:
                sections.append(
                    BriefSection(heading=heading, body="\n".join(buffer).strip())
                )
            heading = match.group("heading")
            buffer = []
            continue
        if heading is not None:
            buffer.append(line)
    if heading is not None:
        sections.append(
            BriefSection(heading=heading, body="\n".join(buffer).strip())
        )
    return BriefDocument(title=title, markdown=cleaned, sections=sections)


class BriefSynthesizer:
    """Produces the final brief from a session that finished all topics."""

    def __init__(self, gateway: LLMGateway) -> None:
        self._gateway = gateway

    async def synthesize(self, session: BriefSession) -> BriefDocument:
        session.ensure_idle()
        if not session.is_ready_to_synthesize():
            raise InvariantViolation(
                "Every topic must be completed or skipped before synthesis."
            )
        with session.in_flight():
            try:
                raw = await self._gateway.synthesize(session.transcript)
            except GatewayFailure as exc:
                logger.warning(
                    "Brief synthesis failed for session %s: %s",
                    session.session_id,
                    exc,
                )
                raise SynthesisFailed("Brief generation failed.") from exc
        document = parse_brief(raw)
        missing = document.missing_sections()
        if missing:
            logger.warning(
                "Synthesized brief is missing sections: %s",
                ", ".join(missing),
            )
        session.brief_text = document.markdown
        return document
