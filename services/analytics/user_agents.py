"""User-agent classification by ordered pattern lists.

Both classifiers walk a priority list and stop at the first pattern that
matches; a user agent that matches several patterns gets the earliest one.
That order is part of the contract:

- device: ``Mobile|Android|iPhone`` -> mobile, then ``iPad|Tablet`` -> tablet,
  otherwise desktop. An Android tablet UA containing ``Android`` is therefore
  counted as mobile.
- browser: Chrome, Firefox, Safari, Edge, otherwise other. Chromium-based Edge
  advertises ``Chrome`` and most Chrome builds advertise ``Safari``, so they
  resolve to chrome.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

DEVICE_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("mobile", re.compile(r"Mobile|Android|iPhone", re.IGNORECASE)),
    ("tablet", re.compile(r"iPad|Tablet", re.IGNORECASE)),
]
DEFAULT_DEVICE = "desktop"

BROWSER_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("chrome", re.compile(r"Chrome", re.IGNORECASE)),
    ("firefox", re.compile(r"Firefox", re.IGNORECASE)),
    ("safari", re.compile(r"Safari", re.IGNORECASE)),
    ("edge", re.compile(r"Edge", re.IGNORECASE)),
]
DEFAULT_BROWSER = "other"

DEVICE_CLASSES = tuple(name for name, _ in DEVICE_PATTERNS) + (DEFAULT_DEVICE,)
BROWSER_CLASSES = tuple(name for name, _ in BROWSER_PATTERNS) + (DEFAULT_BROWSER,)


def _first_match(
    user_agent: Optional[str], patterns: List[Tuple[str, re.Pattern]], default: str
) -> str:
    if not user_agent:
        return default
    for name, pattern in patterns:
        if pattern.search(user_agent):
            return name
    return default


def classify_device(user_agent: Optional[str]) -> str:
    return _first_match(user_agent, DEVICE_PATTERNS, DEFAULT_DEVICE)


def classify_browser(user_agent: Optional[str]) -> str:
    return _first_match(user_agent, BROWSER_PATTERNS, DEFAULT_BROWSER)


__all__ = [
    "DEVICE_CLASSES",
    "BROWSER_CLASSES",
    "classify_device",
    "classify_browser",
]
