"""
Query classification and submission policy.

Operator-submitted SQL is classified by its leading keyword and checked
against an allow/block list before it can reach the execution gateway.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from loadsim.core.errors import MalformedQuery, QueryBlocked, QueryUnsupported
from loadsim.models.metrics import QueryKind

ALLOWED_KEYWORDS: tuple[str, ...] = ("SELECT", "INSERT", "UPDATE")
BLOCKED_KEYWORDS: tuple[str, ...] = (
    "DELETE",
    "DROP",
    "TRUNCATE",
    "ALTER",
    "GRANT",
    "REVOKE",
)

_WORD_RE = re.compile(r"^\w+")


class Verdict(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True, slots=True)
class Decision:
    keyword: str
    verdict: Verdict
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.verdict == Verdict.ALLOWED


def leading_keyword(sql: str) -> str:
    """
    Return the upper-cased leading keyword of `sql`.

    The keyword is the leading run of word characters of the first
    whitespace-delimited token, so "select;" and "SELECT(1)" both give
    "SELECT". A token without word characters is returned as-is.
    """
    text = (sql or "").strip().upper()
    if not text:
        raise MalformedQuery("Invalid SQL query format: no leading keyword")
    token = text.split(maxsplit=1)[0]
    match = _WORD_RE.match(token)
    return match.group(0) if match else token


def classify(sql: str) -> QueryKind:
    """Map SQL text to its QueryKind."""
    keyword = leading_keyword(sql)
    try:
        return QueryKind(keyword)
    except ValueError:
        return QueryKind.OTHER


def validate(keyword: Union[str, QueryKind]) -> Decision:
    """Decide whether statements led by `keyword` may be executed."""
    if isinstance(keyword, QueryKind):
        keyword = keyword.value
    keyword = str(keyword).strip().upper()

    if keyword in ALLOWED_KEYWORDS:
        return Decision(keyword=keyword, verdict=Verdict.ALLOWED)
    if keyword in BLOCKED_KEYWORDS:
        return Decision(
            keyword=keyword,
            verdict=Verdict.BLOCKED,
            reason=f"{keyword} queries are not allowed for security reasons.",
        )
    return Decision(
        keyword=keyword,
        verdict=Verdict.UNSUPPORTED,
        reason=(
            "Unsupported query type. Only "
            f"{', '.join(ALLOWED_KEYWORDS)} queries are allowed."
        ),
    )


def check_submission(sql: str) -> QueryKind:
    """
    Gate operator-submitted SQL.

    Returns the statement's kind when it may run; raises MalformedQuery,
    QueryBlocked or QueryUnsupported otherwise.
    """
    keyword = leading_keyword(sql)
    decision = validate(keyword)
    if decision.verdict == Verdict.BLOCKED:
        raise QueryBlocked(decision)
    if decision.verdict == Verdict.UNSUPPORTED:
        raise QueryUnsupported(decision)
    return QueryKind(keyword)
