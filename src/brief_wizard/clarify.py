"""Helpers for turning a vague initial request into clarified options."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from .errors import ValidationFailure

_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_SUB_OPTION_RE = re.compile(r"^(?:\s{2,}|\t)(?:[-*•]|\d+[.)])\s+")


def _empty_strings() -> List[str]:
    return []


@dataclass(slots=True)
class ClarificationOption:
    """One reframing of the request plus any indented sub-objectives."""

    text: str
    sub_objectives: List[str] = field(default_factory=_empty_strings)


def parse_clarification_options(raw: str) -> List[ClarificationOption]:
    """Parse the model's bullet list, nesting indented lines under mains."""

    options: List[ClarificationOption] = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        is_sub = bool(_SUB_OPTION_RE.match(line))
        text = _MARKER_RE.sub("", line, count=1).strip()
        if not text:
            continue
        if is_sub and options:
            options[-1].sub_objectives.append(text)
            continue
        options.append(ClarificationOption(text=text))
    return options


def combine_clarifications(
    options: Sequence[ClarificationOption],
    *,
    selected: Iterable[int] = (),
    selected_subs: Optional[Mapping[int, Iterable[str]]] = None,
) -> str:
    """Rebuild the initial request from the options the user picked.

    A selected sub-objective pulls its main option in even when the main
    option itself was not selected.
    """

    chosen = set(selected)
    sub_lookup = dict(selected_subs or {})
    blocks: List[str] = []
    for index, option in enumerate(options):
        wanted = set(sub_lookup.get(index, ()))
        subs = [sub for sub in option.sub_objectives if sub in wanted]
        if index not in chosen and not subs:
            continue
        lines = [f"- {option.text}"]
        lines.extend(f"  - {sub}" for sub in subs)
        blocks.append("\n".join(lines))
    if not blocks:
        raise ValidationFailure(
            "Please select at least one clarification option or "
            "sub-objective."
        )
    return "\n\n".join(blocks)
