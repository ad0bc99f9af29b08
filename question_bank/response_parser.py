# question_bank/response_parser.py
# Created: 2026-10-03
# Purpose: Turn raw chat-completion text into sanitized Question candidates

"""
Response Parser

Model output is unreliable: prose around the JSON, markdown fences, trailing
commas, unquoted keys, single quotes, truncated arrays. The parser tolerates
all of it and never raises; bad input degrades to fewer (or zero) candidates.

Two explicit steps:
    1. extract_raw_candidates(text) -> [RawCandidate]   (untrusted dicts)
    2. sanitize_candidate(raw, ...) -> Question | None  (canonical record)

parse_questions() composes them.
"""

from __future__ import annotations

import json
import logging
import random
import re
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from question_bank.question_models import Difficulty, Question


logger = logging.getLogger(__name__)

QUESTION_FIELDS = ("question", "text", "stem")

_ARRAY_OF_OBJECTS = re.compile(r"\[\s*\{")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)\s*:")
_SINGLE_QUOTED_VALUE = re.compile(r":\s*'([^']*)'")
_WHITESPACE = re.compile(r"\s+")


# ============================================================================
# Raw Candidates
# ============================================================================

@dataclass
class RawCandidate:
    """An object pulled out of model output, not yet trusted."""

    index: int
    payload: Any

    def question_text(self) -> Optional[str]:
        if not isinstance(self.payload, dict):
            return None
        for key in QUESTION_FIELDS:
            value = self.payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


# ============================================================================
# JSON Span Location
# ============================================================================

def _match_bracket(text: str, start: int) -> Optional[int]:
    """Return the index of the bracket closing text[start], or None if truncated."""
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        char = text[i]
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return i
    return None


def find_json_array(text: str) -> Optional[str]:
    """
    Locate the first array-like JSON span in *text*.

    Prefers an array of objects. A truncated array (no closing bracket) is
    returned from its opening bracket to the end of the text so the object
    scanner can still salvage the complete objects.
    """
    if not text:
        return None

    match = _ARRAY_OF_OBJECTS.search(text)
    if match:
        start = match.start()
    else:
        start = text.find("[")
        if start == -1:
            return None

    end = _match_bracket(text, start)
    if end is None:
        return text[start:]
    return text[start:end + 1]


def repair_json(span: str) -> str:
    """Apply forgiving fixes for the usual model JSON mistakes."""
    repaired = _TRAILING_COMMA.sub(r"\1", span)
    repaired = _UNQUOTED_KEY.sub(r'\1"\2":', repaired)
    repaired = _SINGLE_QUOTED_VALUE.sub(r': "\1"', repaired)
    repaired = _WHITESPACE.sub(" ", repaired)
    return repaired.strip()


def _loads(fragment: str) -> Any:
    """json.loads, retrying once on the repaired fragment."""
    try:
        return json.loads(fragment)
    except json.JSONDecodeError:
        return json.loads(repair_json(fragment))


def scan_objects(span: str) -> List[Dict[str, Any]]:
    """
    Walk *span* tracking brace depth and string/escape state.

    Each time depth returns to zero the accumulated object is parsed on its
    own; an object that fails to parse is dropped without affecting siblings.
    """
    objects: List[Dict[str, Any]] = []
    depth = 0
    in_string = False
    escape = False
    obj_start = -1

    for i, char in enumerate(span):
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == "{":
            if depth == 0:
                obj_start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and obj_start != -1:
                fragment = span[obj_start:i + 1]
                obj_start = -1
                try:
                    objects.append(_loads(fragment))
                except json.JSONDecodeError as exc:
                    logger.warning(f"Skipping malformed question object: {exc}")

    return objects


def extract_raw_candidates(content: str) -> List[RawCandidate]:
    """Pull every object out of the first JSON array found in *content*."""
    span = find_json_array(content or "")
    if span is None:
        logger.warning("No JSON array found in response")
        return []

    try:
        parsed = json.loads(span)
    except json.JSONDecodeError:
        try:
            parsed = json.loads(repair_json(span))
        except json.JSONDecodeError:
            logger.info("Strict parse failed, extracting individual objects")
            parsed = scan_objects(span)

    if not isinstance(parsed, list):
        parsed = [parsed]

    return [RawCandidate(index=i, payload=item) for i, item in enumerate(parsed)]


# ============================================================================
# Sanitizing
# ============================================================================

def _batch_seed() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{int(time.time() * 1000)}_{suffix}"


def _clean_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _clean_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [str(item).strip() for item in value if item is not None]


def sanitize_candidate(
    raw: RawCandidate,
    topic: str,
    batch_seed: str,
    seen_ids: Set[str],
) -> Optional[Question]:
    """Produce a canonical Question from a raw candidate, or None to drop it."""
    text = raw.question_text()
    if text is None:
        logger.warning(f"Skipping candidate {raw.index}: no question text")
        return None

    payload: Dict[str, Any] = raw.payload

    qid = _clean_str(payload.get("id"))
    if not qid or qid in seen_ids:
        qid = f"{topic}_{batch_seed}_{raw.index}"
    seen_ids.add(qid)

    tags = _clean_list(payload.get("tags"))
    options = _clean_list(payload.get("options"))

    return Question(
        id=qid,
        question=text,
        topic=topic,
        difficulty=Difficulty.coerce(payload.get("difficulty"), Difficulty.MEDIUM),
        tags=tags if tags is not None else ["general"],
        example=_clean_str(payload.get("example")),
        options=options if options is not None else [],
        answer=_clean_str(payload.get("answer")),
    )


def parse_questions(content: str, topic: str) -> List[Question]:
    """Parse model output into sanitized candidates for *topic*. Never raises."""
    try:
        raw_candidates = extract_raw_candidates(content)
    except Exception as exc:
        logger.warning(f"JSON parsing failed completely: {exc}")
        return []

    batch_seed = _batch_seed()
    seen_ids: Set[str] = set()
    questions = []
    for raw in raw_candidates:
        question = sanitize_candidate(raw, topic, batch_seed, seen_ids)
        if question is not None:
            questions.append(question)

    if questions:
        logger.info(f"Parsed {len(questions)} questions for {topic}")
    else:
        logger.warning(f"No valid questions found in response for {topic}")
    return questions


__all__ = [
    "RawCandidate",
    "find_json_array",
    "repair_json",
    "scan_objects",
    "extract_raw_candidates",
    "sanitize_candidate",
    "parse_questions",
]
