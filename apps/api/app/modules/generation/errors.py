"""
User-facing text for generation failures.

The stored sentinel keeps the raw provider error; this maps it to something an
admin can act on.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_PROVIDER_MESSAGE = re.compile(r'\{[\s\S]*"message"\s*:\s*"([^"]+)"[\s\S]*\}')
# word-bounded: "generated" must not read as "rate"
_RATE_LIMIT = re.compile(r"\brate\b|\bquota\b|\blimit|too many requests|\b429\b")


@dataclass(frozen=True)
class GenerationErrorInfo:
    message: str
    technical_details: str
    overloaded: bool = False


def _any(text: str, *needles: str) -> bool:
    return any(n in text for n in needles)


def describe_generation_error(error: Optional[str]) -> GenerationErrorInfo:
    raw = error or ""
    low = raw.lower()

    if _any(low, "503", "unavailable", "overloaded", "high demand"):
        return GenerationErrorInfo(
            "Image servers are currently overloaded. Please retry once they recover.",
            raw,
            overloaded=True,
        )

    m = _PROVIDER_MESSAGE.search(raw)
    if m:
        return GenerationErrorInfo(m.group(1), raw)

    if "no image generated" in low:
        return GenerationErrorInfo("No image was generated - try editing the description", raw)
    if _RATE_LIMIT.search(low):
        return GenerationErrorInfo("Too many requests - please wait a moment and try again", raw)
    if _any(low, "safety", "blocked", "moderation", "policy"):
        return GenerationErrorInfo("Content flagged by safety filters - please revise the description", raw)
    if _any(low, "billing", "payment", "disabled", "402"):
        return GenerationErrorInfo("Generation provider billing or access issue - check the provider account", raw)
    if _any(low, "timeout", "timed out"):
        return GenerationErrorInfo("Request timed out - please try again", raw)
    if _any(low, "network", "connection"):
        return GenerationErrorInfo("Network error - please check your connection and try again", raw)

    return GenerationErrorInfo("Generation failed - please try again", raw)
