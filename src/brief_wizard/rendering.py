"""Formatting helpers that turn brief Markdown into displayable output."""

from __future__ import annotations

import re
from dataclasses import dataclass
from html import escape as html_escape
from typing import Iterator, List

from .session import BriefSession
from .topics import TopicStatus

DEFAULT_BRIEF_FILENAME = "strategic_insights_brief"

_BULLET_RE = re.compile(r"^(?P<indent>\s*)[-*]\s+(?P<text>.+)$")
_TITLE_RE = re.compile(r"^# (.*)", re.MULTILINE)

_STATUS_MARKERS = {
    TopicStatus.PENDING: "[ ]",
    TopicStatus.ACTIVE: "[>]",
    TopicStatus.COMPLETED: "[x]",
    TopicStatus.SKIPPED: "[-]",
}


@dataclass(slots=True)
class BriefBlock:
    """A logical block of brief content shared by every renderer."""

    kind: str
    text: str = ""
    level: int = 0


def iter_brief_blocks(markdown: str) -> Iterator[BriefBlock]:
    """Yield headings, bullets, paragraphs and blank lines in order."""

    for raw_line in markdown.splitlines():
        line = raw_line.rstrip()
        stripped = line.strip()
        if not stripped:
            yield BriefBlock(kind="blank")
            continue
        if stripped.startswith("### "):
            yield BriefBlock(kind="heading3", text=_clean_inline(stripped[4:]))
            continue
        if stripped.startswith("## "):
            yield BriefBlock(kind="heading2", text=_clean_inline(stripped[3:]))
            continue
        if stripped.startswith("# "):
            yield BriefBlock(kind="heading1", text=_clean_inline(stripped[2:]))
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            level = 1 if len(bullet.group("indent")) >= 2 else 0
            yield BriefBlock(
                kind="bullet",
                text=_clean_inline(bullet.group("text")),
                level=level,
            )
            continue
        yield BriefBlock(kind="paragraph", text=_clean_inline(stripped))


def _clean_inline(text: str) -> str:
    cleaned = text.replace("**", "").replace("__", "").replace("`", "")
    return cleaned.strip()


def render_brief_html(markdown: str) -> str:
    """Render brief Markdown as an HTML fragment."""

    if not markdown.strip():
        return "<p>Error: No brief content received.</p>"
    parts: List[str] = []
    in_list = False
    for block in iter_brief_blocks(markdown):
        if block.kind == "bullet":
            if not in_list:
                parts.append("<ul>")
                in_list = True
            margin = "20px" if block.level else "0"
            parts.append(
                f'<li style="margin-left: {margin};">'
                f"{html_escape(block.text)}</li>"
            )
            continue
        if in_list:
            parts.append("</ul>")
            in_list = False
        if block.kind == "blank":
            parts.append("<br>")
        elif block.kind.startswith("heading"):
            tag = f"h{block.kind[-1]}"
            parts.append(f"<{tag}>{html_escape(block.text)}</{tag}>")
        else:
            parts.append(f"<p>{html_escape(block.text)}</p>")
    if in_list:
        parts.append("</ul>")
    return "".join(parts)


def brief_plain_text(markdown: str) -> str:
    """Plain text suitable for copying the brief to the clipboard."""

    lines: List[str] = []
    for block in iter_brief_blocks(markdown):
        if block.kind == "blank":
            lines.append("")
        elif block.kind == "bullet":
            lines.append(f"{'  ' * block.level}- {block.text}")
        else:
            lines.append(block.text)
    return "\n".join(lines).strip()


def brief_filename(markdown: str, suffix: str = ".docx") -> str:
    """Derive a download filename from the brief's title line."""

    match = _TITLE_RE.search(markdown)
    if match is None or not match.group(1).strip():
        return f"{DEFAULT_BRIEF_FILENAME}{suffix}"
    stem = re.sub(r"[^a-z0-9]", "_", match.group(1), flags=re.IGNORECASE)
    return f"{stem.lower()}{suffix}"


def render_topic_progress(session: BriefSession) -> List[str]:
    """Sidebar lines describing each topic's status."""

    return [
        f"{_STATUS_MARKERS[topic.status]} {topic.display_name}"
        for topic in session.topics
    ]
