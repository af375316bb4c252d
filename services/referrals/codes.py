"""Referral code generation and validation."""

from __future__ import annotations

import re
import secrets
import string
from typing import Callable, Optional

from core.config import settings
from core.errors import CodeGenerationExhausted, ValidationError
from core.metrics import CODE_COLLISIONS_TOTAL
from core.telemetry import logger
from database.partner_repos import code_exists

_ALPHABET = string.ascii_uppercase + string.digits
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_SUFFIX_LENGTH = 3
_MIN_BODY = 4
_MAX_BODY = 10
_STEM_LENGTH = min(8, _MAX_BODY - _SUFFIX_LENGTH)


def normalize_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    clean = code.strip().upper()
    return clean or None


def is_valid_code(code: str) -> bool:
    return re.match(settings.code_pattern, code) is not None


def validate_code(code: Optional[str]) -> str:
    """Return the upper-cased code or raise ``ValidationError``."""
    normalized = normalize_code(code)
    if not normalized or not is_valid_code(normalized):
        raise ValidationError(f"Invalid referral code: {code!r}")
    return normalized


def build_stem(name: str) -> str:
    return _NON_ALNUM.sub("", name or "").upper()[:_STEM_LENGTH]


def random_suffix(length: int = _SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def candidate_code(name: str) -> str:
    stem = build_stem(name)
    # An empty stem still needs a 4-char body.
    suffix = random_suffix(max(_SUFFIX_LENGTH, _MIN_BODY - len(stem)))
    return f"{settings.REFERRAL_CODE_PREFIX}-{stem}{suffix}"


def generate_code(
    name: str,
    is_taken: Optional[Callable[[str], bool]] = None,
    *,
    max_attempts: Optional[int] = None,
) -> str:
    """Produce an unused code for ``name``.

    ``is_taken`` defaults to a store lookup; partner creation passes a probe
    bound to its own transaction instead. Only the random suffix changes
    between attempts.
    """

    probe = is_taken or code_exists
    attempts = max_attempts or settings.CODE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        candidate = candidate_code(name)
        if not probe(candidate):
            return candidate
        CODE_COLLISIONS_TOTAL.inc()
        logger.debug(
            "Referral code collision",
            extra={"candidate": candidate, "attempt": attempt},
        )
    logger.error(
        "Referral code generation exhausted",
        extra={"stem": build_stem(name), "attempts": attempts},
    )
    raise CodeGenerationExhausted(
        f"Could not generate a unique referral code after {attempts} attempts"
    )


def is_unique(code: str) -> bool:
    return not code_exists(validate_code(code))


__all__ = [
    "normalize_code",
    "is_valid_code",
    "validate_code",
    "build_stem",
    "random_suffix",
    "candidate_code",
    "generate_code",
    "is_unique",
]
