"""
Reply Filter - per-user keyword, NG-word and ban-list gate.

Decides whether one user should auto-reply to one inbound post. Three
checks run in order, and the first failure wins:

    1. keywords   - the user's ``keywords`` rule (comma-separated). When set,
                    the text must contain at least one keyword.
    2. NG words   - the text must not contain any of the user's NG words.
    3. ban list   - the post author must not be banned by the user.

Matching is a case-insensitive substring match, since Japanese text has
no word boundaries to anchor on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

KEYWORDS_RULE_KEY = "keywords"


@dataclass
class FilterResult:
    """Outcome of the filter for one (event, user) pair."""
    allowed: bool
    reason: Optional[str] = None
    matched_keywords: list[str] = field(default_factory=list)


def parse_keywords(value: Optional[str]) -> list[str]:
    """Split a comma-separated keyword rule, accepting the Japanese comma too."""
    if not value:
        return []
    value = value.replace("、", ",").replace("，", ",")
    return [k.strip().lower() for k in value.split(",") if k.strip()]


def keywords_from_rules(rules: list[dict]) -> list[str]:
    """Collect keywords from every ``keywords`` rule a user owns."""
    keywords: list[str] = []
    for rule in rules:
        if rule.get("rule_key") == KEYWORDS_RULE_KEY:
            keywords.extend(parse_keywords(rule.get("rule_value")))
    return keywords


class ReplyFilter:
    """
    Per-user gate in front of reply generation.

    If a user has no keyword rule, every post passes the keyword check.
    """

    def __init__(self, db):
        """
        Args:
            db: Store exposing ``get_user_rules``, ``get_ng_words`` and ``is_banned``.
        """
        self.db = db

    @staticmethod
    def match_keywords(text: str, keywords: list[str]) -> list[str]:
        lowered = text.lower()
        return [k for k in keywords if k in lowered]

    @staticmethod
    def find_ng_word(text: str, ng_words: list[str]) -> Optional[str]:
        lowered = text.lower()
        for word in ng_words:
            if word and word.lower() in lowered:
                return word
        return None

    async def check(
        self,
        user_id: str,
        text: str,
        username: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FilterResult:
        """
        Run all checks for ``user_id``.

        Args:
            user_id: Owner whose rules apply.
            text: Inbound post text.
            username: Post author on the platform, if known.
            now: Reference time for ban expiry.

        Returns:
            FilterResult; ``reason`` explains a rejection.
        """
        keywords = keywords_from_rules(await self.db.get_user_rules(user_id))
        matched: list[str] = []
        if keywords:
            matched = self.match_keywords(text, keywords)
            if not matched:
                return FilterResult(allowed=False, reason="no keyword matched")

        ng_word = self.find_ng_word(text, await self.db.get_ng_words(user_id))
        if ng_word:
            return FilterResult(allowed=False, reason=f"NG word '{ng_word}'")

        if username and await self.db.is_banned(user_id, username, now=now):
            return FilterResult(allowed=False, reason=f"author @{username} is banned")

        return FilterResult(allowed=True, matched_keywords=matched)
