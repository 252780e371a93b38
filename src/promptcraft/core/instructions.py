"""Message construction and response cleanup for enhancement calls.

The resolved template becomes the system message; the user's draft becomes
the user message, optionally nudged towards positive language ("happy talk")
or a more compact result.  Provider replies are cleaned of the boilerplate
models like to wrap around a prompt.
"""

import logging
import math
import re
from typing import Any

from .models import clamp_compression_level

logger = logging.getLogger(__name__)

HAPPY_TALK_SUFFIX = "Focus on positive, uplifting language and beautiful imagery."

OUTPUT_ONLY_RULE = "Provide ONLY the enhanced prompt text, no explanations or meta-text."

# Compression level (1..10) -> how strongly the result should be condensed
_COMPRESSION_PHRASES = {
    1: "very slightly more",
    2: "slightly more",
    3: "a little more",
    4: "moderately more",
    5: "noticeably more",
    6: "considerably more",
    7: "much more",
    8: "very much more",
    9: "extremely",
    10: "as",
}

_SENTENCE_TAGS = re.compile(r"</?s>", re.IGNORECASE)
_RESPONSE_PREFIXES = re.compile(
    r"^(enhanced|generated|improved|final)?\s*(pipeline |narrative |longform |wildcard )?prompt:\s*",
    re.IGNORECASE,
)
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def compression_instruction(level: int) -> str:
    """Return the sentence asking the model to condense its output."""
    level = clamp_compression_level(level)
    if level == 10:
        return "Make the result as concise as possible."
    return f"Make the result {_COMPRESSION_PHRASES[level]} concise."


def build_system_message(master_prompt: str, usage_rules: str = "") -> str:
    parts = [master_prompt.strip()]
    if usage_rules and usage_rules.strip():
        parts.append(f"Usage rules:\n{usage_rules.strip()}")
    parts.append(OUTPUT_ONLY_RULE)
    return "\n\n".join(parts)


def build_user_message(
    prompt: str,
    use_happy_talk: bool = False,
    compress_prompt: bool = False,
    compression_level: int = 5,
) -> str:
    """Build the user message sent alongside the template instructions.

    Args:
        prompt: Draft prompt to enhance
        use_happy_talk: Append the positive-language instruction
        compress_prompt: Append a conciseness instruction
        compression_level: Strength of the conciseness instruction (1-10)

    Returns:
        The user message text
    """
    content = _SENTENCE_TAGS.sub("", prompt).strip()
    message = (
        "Apply your formatting rules to the following content, preserving its subject "
        f"and intent.\n\nContent to enhance: {content}"
    )

    extras = []
    if use_happy_talk:
        extras.append(HAPPY_TALK_SUFFIX)
    if compress_prompt:
        extras.append(compression_instruction(compression_level))
    if extras:
        message = f"{message}\n\n{' '.join(extras)}"
    return message


def clean_response(text: str | None) -> str:
    """Strip quotes, labels and markdown emphasis from a provider reply."""
    if not text:
        return ""
    cleaned = text.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
        cleaned = cleaned[1:-1].strip()
    cleaned = _RESPONSE_PREFIXES.sub("", cleaned)
    cleaned = cleaned.replace("**", "")
    return cleaned.strip()


def estimate_token_count(text: str) -> int:
    """Rough token estimate (about four characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def apply_format_template(format_template: str, prompt: str, facets: dict[str, Any] | None = None) -> str:
    """Render a template's format string with the draft and facet values.

    ``{prompt}`` is replaced by the draft, every other ``{name}`` by the facet
    value of that name.  Placeholders without a value are dropped, together
    with any pipe separators they leave dangling.  An empty render falls back
    to the draft itself.
    """
    values = {key: value for key, value in (facets or {}).items() if value not in (None, "")}
    values["prompt"] = prompt

    def _substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item) for item in value)
        return "" if value is None else str(value)

    rendered = _PLACEHOLDER.sub(_substitute, format_template or "{prompt}")

    # Collapse separators left behind by empty placeholders
    rendered = re.sub(r"(\s*\|\s*)+", " | ", rendered)
    rendered = re.sub(r"^\s*\|\s*|\s*\|\s*$", "", rendered)
    rendered = re.sub(r"\s+", " ", rendered).strip()
    return rendered or prompt
