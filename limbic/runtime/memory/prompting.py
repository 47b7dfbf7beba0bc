"""
Prompting - JSON-mode prompts for fact extraction and emotion scoring

WHAT: Message builders and response parsing for the cognition provider
WHERE: limbic/runtime/memory/prompting.py - prompt composition layer
WHO: OpenAIProvider building chat-completion requests
TIME: Prompt assembly <1ms

Both prompts ask for a single JSON object so they can run with
``response_format={"type": "json_object"}``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

FACT_EXTRACTION_SYSTEM = (
    "You are a fact extractor. Extract the main fact from the given text and return it in JSON format.\n"
    "Your response must be a valid JSON object with exactly this format:\n"
    "{\n"
    '  "content": "the extracted fact as a string",\n'
    '  "emotionalImpact": {\n'
    '    "joy": <number between -1 and 1>,\n'
    '    "calm": <number between -1 and 1>,\n'
    '    "anger": <number between -1 and 1>,\n'
    '    "sadness": <number between -1 and 1>\n'
    "  }\n"
    "}\n"
    'Example: {"content": "The sun is shining", "emotionalImpact": '
    '{"joy": 0.8, "calm": 0.5, "anger": -0.2, "sadness": -0.3}}'
)

EMOTION_ANALYSIS_SYSTEM = (
    "Analyze the emotional content of the text and return a JSON object with numeric values between -1 and 1.\n"
    "Your response must be a valid JSON object with exactly this format:\n"
    '{"joy": <number>, "calm": <number>, "anger": <number>, "sadness": <number>}\n'
    'Example: {"joy": 0.8, "calm": 0.5, "anger": -0.2, "sadness": -0.3}'
)


@dataclass(slots=True)
class ExtractionContext:
    """Facts already known to the agent, shown to the extractor as background."""

    recent_facts: List[str] = field(default_factory=list)
    working_memory: List[str] = field(default_factory=list)
    pattern_facts: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.recent_facts or self.working_memory or self.pattern_facts)

    def render(self) -> str:
        sections = [
            ("Previous context", self.recent_facts),
            ("Working memory", self.working_memory),
            ("Significant patterns", self.pattern_facts),
        ]
        lines: List[str] = []
        for title, items in sections:
            if items:
                lines.append(f"{title}:")
                lines.extend(f"- {item}" for item in items)
        return "\n".join(lines)


def build_extraction_messages(text: str, context: ExtractionContext | None = None) -> List[Dict[str, str]]:
    background = "" if context is None or context.is_empty() else context.render() + "\n"
    return [
        {"role": "system", "content": FACT_EXTRACTION_SYSTEM},
        {"role": "user", "content": f"{background}Text to analyze: {text}"},
    ]


def build_emotion_messages(text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": EMOTION_ANALYSIS_SYSTEM},
        {"role": "user", "content": text},
    ]


def parse_json_object(raw: str | None) -> Dict[str, Any]:
    """Parse a JSON-mode completion; raises ValueError unless it is an object."""
    parsed = json.loads(raw or "{}")
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def truncate(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def preview_messages(messages: Sequence[Dict[str, str]], limit: int = 100) -> List[Dict[str, str]]:
    return [{"role": m["role"], "content": truncate(m["content"], limit)} for m in messages]


__all__ = [
    "EMOTION_ANALYSIS_SYSTEM",
    "FACT_EXTRACTION_SYSTEM",
    "ExtractionContext",
    "build_emotion_messages",
    "build_extraction_messages",
    "parse_json_object",
    "preview_messages",
    "truncate",
]
