"""Mention and hashtag extraction for post text."""

from __future__ import annotations

import re
from typing import List

_MENTION = re.compile(r"@([\w.-]+\.(?:near|tg))", re.ASCII)
_HASHTAG = re.compile(r"#(\w+)", re.ASCII)


def extract_mentions(text: str) -> List[str]:
    """Return @mentioned .near/.tg accounts in first-seen order, deduplicated."""
    return list(dict.fromkeys(_MENTION.findall(text or "")))


def extract_hashtags(text: str) -> List[str]:
    """Return lowercased #hashtags in first-seen order, deduplicated."""
    return list(dict.fromkeys(tag.lower() for tag in _HASHTAG.findall(text or "")))
