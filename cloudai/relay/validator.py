"""Request validation: shape checks, content policy, defaults. Runs before any upstream connection."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional

from cloudai.config.loader import DEFAULT_BLOCKED_PATTERN
from cloudai.core.errors import ValidationError
from cloudai.core.events import Sophistication, StreamRequest

logger = logging.getLogger(__name__)

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


class ContentPolicy:
    """Case-insensitive blocklist. allows() is the only contract the relay depends on."""

    def __init__(self, pattern: str = DEFAULT_BLOCKED_PATTERN) -> None:
        self._re = re.compile(pattern, re.IGNORECASE)

    def allows(self, text: str) -> bool:
        return self._re.search(text) is None


def _parse_temperature(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError("invalid temperature")
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        raise ValidationError("invalid temperature") from None
    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ValidationError("temperature out of range")
    return temperature


def _parse_sophistication(value: Any, default: str) -> Sophistication:
    if value is None or value == "":
        value = default
    try:
        return Sophistication(value)
    except ValueError:
        raise ValidationError("invalid sophistication") from None


def validate_request(
    raw: Mapping[str, Any],
    *,
    policy: ContentPolicy,
    default_model: str,
    default_temperature: float = 0.2,
    default_sophistication: str = "very-high",
) -> StreamRequest:
    """Build a StreamRequest from raw request fields or raise ValidationError.

    Prompt checks come first so a missing or disallowed prompt is reported
    even when other fields are also wrong.
    """
    prompt = raw.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("missing prompt")
    if not policy.allows(prompt):
        logger.info("prompt rejected by content policy", extra={"prompt_length": len(prompt)})
        raise ValidationError("disallowed content")

    model: Optional[Any] = raw.get("model")
    if model is None or model == "":
        model = default_model
    elif not isinstance(model, str):
        raise ValidationError("invalid model")

    return StreamRequest(
        prompt=prompt,
        model=model,
        temperature=_parse_temperature(raw.get("temperature"), default_temperature),
        sophistication=_parse_sophistication(raw.get("sophistication"), default_sophistication),
    )
