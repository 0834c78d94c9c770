"""
Structured Panel Extractor

Turns a text model's free-form answer into exactly `requested_count` panels.
The model is asked for a bare JSON array but is not guaranteed to return one,
so extraction runs an ordered chain of pure reshaping steps:

1. strip a fenced code block wrapping the whole answer
2. parse the text directly
3. re-slice from the first '[' to the last ']'
4. if there is no bracket pair, wrap a lone {...} object into an array

The first attempt that yields a valid panel array wins. If none does, the
original parse error is raised as MalformedStructuredOutput with the raw text.
"""

from __future__ import annotations

import re
from typing import Callable, List, NamedTuple, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from .artifact import PanelContent, PanelRecord
from .constants import EMPTY_CAPTION
from .errors import MalformedStructuredOutput

SCENE_KEY = "sceneDescription"
CAPTION_KEY = "dialogueOrCaption"

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class ExtractionAttempt(NamedTuple):
    """Result of one parse attempt: either records or an error message."""
    records: Optional[List[PanelRecord]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.records is not None


# ---------- Reshaping Steps ----------

def strip_code_fence(text: str) -> str:
    """Unwrap ```lang ... ``` when it encloses the entire (trimmed) text."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match and match.group(2):
        return match.group(2).strip()
    return text


def slice_bracket_span(text: str) -> Optional[str]:
    """Return text from the first '[' to the last ']', or None if there is no such pair."""
    first = text.find("[")
    last = text.rfind("]")
    if first != -1 and last > first:
        return text[first:last + 1]
    return None


def wrap_single_object(text: str) -> Optional[str]:
    """Wrap a lone {...} object in an array, or None if the text is not one object."""
    trimmed = text.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return f"[{trimmed}]"
    return None


def _direct(text: str) -> Optional[str]:
    return text


# Ordered fallbacks. A step returning None does not apply to this text.
EXTRACTION_CHAIN: Tuple[Tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("direct", _direct),
    ("bracket_slice", slice_bracket_span),
    ("object_wrap", wrap_single_object),
)


# ---------- Parsing & Validation ----------

PANEL_RECORDS = TypeAdapter(List[PanelRecord])


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for detail in error.errors()[:3]:
        location = ".".join(str(part) for part in detail["loc"])
        problems.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(problems)


def parse_panel_array(text: str) -> ExtractionAttempt:
    """Parse and validate text as a JSON array of {sceneDescription, dialogueOrCaption} records."""
    try:
        return ExtractionAttempt(records=PANEL_RECORDS.validate_json(text))
    except ValidationError as e:
        return ExtractionAttempt(error=f"Invalid panel data: {_describe_validation_error(e)}")


def normalize_caption(caption: Optional[str]) -> str:
    """Blank or missing captions become the single-space sentinel."""
    if caption is None or caption.strip() == "":
        return EMPTY_CAPTION
    return caption


def to_panel_contents(records: List[PanelRecord]) -> List[PanelContent]:
    return [
        PanelContent(
            scene_description=record.scene_description,
            dialogue_or_caption=normalize_caption(record.dialogue_or_caption),
        )
        for record in records
    ]


# ---------- Extraction ----------

def find_panel_records(raw_text: str) -> List[PanelRecord]:
    """Run the fallback chain and return the first valid list of panel records.

    Raises:
        MalformedStructuredOutput: If every applicable step fails
    """
    text = strip_code_fence(raw_text or "")
    original_error = None

    for name, reshape in EXTRACTION_CHAIN:
        candidate = reshape(text)
        if candidate is None:
            continue

        attempt = parse_panel_array(candidate)
        if attempt.ok:
            if name != "direct":
                print(f"  ⚠️  Panel JSON recovered with '{name}' fallback")
            return attempt.records

        if original_error is None:
            original_error = attempt.error
            print(f"  ⚠️  Initial panel JSON parse failed ({attempt.error}). Attempting more aggressive extraction.")
        elif name != "direct":
            # A fallback that found its span and still failed ends the chain
            break

    raise MalformedStructuredOutput(
        f"AI did not return valid panel data. Expected an array of {{{SCENE_KEY}, {CAPTION_KEY}}}. {original_error}",
        raw_response=raw_text,
    )


def extract_panels(raw_text: str, requested_count: int) -> List[PanelContent]:
    """Extract exactly `requested_count` panels from a text model's answer.

    Extra panels are dropped (order preserved). Too few panels is an error;
    missing panels are never invented.

    Args:
        raw_text: Raw text returned by the text model
        requested_count: Number of panels requested for the run

    Returns:
        List of PanelContent with normalized captions

    Raises:
        MalformedStructuredOutput: If no valid panel array can be recovered,
            or it holds fewer panels than requested
    """
    if requested_count < 1:
        raise ValueError("requested_count must be at least 1")

    panels = to_panel_contents(find_panel_records(raw_text))

    if len(panels) < requested_count:
        raise MalformedStructuredOutput(
            f"AI returned {len(panels)} panel(s) but {requested_count} were requested.",
            raw_response=raw_text,
        )

    if len(panels) > requested_count:
        print(f"  ✂️  Truncating {len(panels)} panels to the requested {requested_count}")

    return panels[:requested_count]
