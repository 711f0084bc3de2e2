"""Select reminders by date window, keyword or free-text description.

The selection functions are pure: they only look at the candidates they're
given, which keeps bulk deletion testable without a store.
"""

import re
import unicodedata
from datetime import datetime, timedelta
from typing import Optional, Sequence

from logger import get_logger
from . import config
from .models import Reminder, to_iso, to_utc

logger = get_logger(__name__)

STOPWORDS = {
    # Portuguese
    "que", "com", "para", "por", "dos", "das", "uma", "uns", "umas", "nos", "nas",
    "meu", "minha", "meus", "minhas", "seu", "sua", "lembrete", "lembretes",
    "sobre", "todos", "todas", "ele", "ela", "isso", "este", "esta", "aquele",
    # English
    "the", "and", "for", "with", "about", "from", "this", "that", "all",
    "reminder", "reminders", "remind", "my", "your",
}

MIN_TOKEN_LENGTH = 3

# Answer the classifier gives when nothing matches
NO_MATCH_MARKER = "NONE"

SEMANTIC_SYSTEM_PROMPT = (
    "You select reminders that match a user's description. "
    "You receive a numbered list of reminders and a query, in any language. "
    "Answer ONLY with the numbers of the matching reminders separated by commas "
    f"(e.g. 1,3), or {NO_MATCH_MARKER} if none match. No other text."
)


def _normalize(text: str) -> str:
    """Casefold and strip accents so 'João' matches 'joao'."""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def tokenize(query: str) -> list[str]:
    """Split on non-alphanumeric boundaries, dropping stopwords and short tokens."""
    tokens = re.findall(r"[^\W_]+", _normalize(query))
    return [t for t in tokens if len(t) >= MIN_TOKEN_LENGTH and t not in STOPWORDS]


def by_date_window(
    candidates: Sequence[Reminder],
    target_date: datetime | str,
    window_hours: float | None = None
) -> list[Reminder]:
    """Candidates scheduled within `window_hours` of `target_date`.

    Raises:
        ValueError: If target_date is an unparseable string
    """
    window = timedelta(hours=window_hours if window_hours is not None else config.REMINDER_DATE_WINDOW_HOURS)
    target = to_utc(target_date)
    return [r for r in candidates if abs(r.scheduled_for - target) < window]


def by_keyword(candidates: Sequence[Reminder], query: str) -> list[Reminder]:
    """Keyword scoring over reminder messages.

    A full-query substring match short-circuits and returns those matches in
    their original order. Otherwise each candidate scores one point per
    query token found in its message; score > 0 is returned, highest first,
    ties in original order.
    """
    needle = _normalize(query or "")
    if not needle:
        return []

    messages = [_normalize(r.message) for r in candidates]

    exact = [r for r, msg in zip(candidates, messages) if needle in msg]
    if exact:
        return exact

    tokens = tokenize(query)
    if not tokens:
        return []

    scored = []
    for index, (reminder, msg) in enumerate(zip(candidates, messages)):
        score = sum(1 for token in tokens if token in msg)
        if score > 0:
            scored.append((-score, index, reminder))

    scored.sort(key=lambda item: (item[0], item[1]))
    return [reminder for _, _, reminder in scored]


def _cap(matches: list[Reminder], max_count: Optional[int]) -> list[Reminder]:
    if max_count is not None and max_count > 0:
        return matches[:max_count]
    return matches


def parse_selection(answer: str, candidates: Sequence[Reminder]) -> Optional[list[Reminder]]:
    """Map a classifier answer ("1,3" or NONE) onto candidates.

    Returns:
        Selected reminders ([] for the no-match marker), or None when the
        answer is empty or unparseable
    """
    answer = (answer or "").strip().strip(".").strip()
    if not answer:
        return None
    if answer.upper() == NO_MATCH_MARKER:
        return []
    if not re.fullmatch(r"\d+(\s*,\s*\d+)*", answer):
        return None

    selected = []
    seen = set()
    for raw in answer.split(","):
        index = int(raw.strip())
        if 1 <= index <= len(candidates) and index not in seen:
            seen.add(index)
            selected.append(candidates[index - 1])

    return selected or None


class SemanticMatcher:
    """Description matching via Claude, falling back to keyword scoring.

    The classifier only needs a `complete(message, system)` coroutine, so
    tests can pass any stub.
    """

    def __init__(self, classifier=None):
        self.classifier = classifier

    @property
    def available(self) -> bool:
        return self.classifier is not None

    def _build_prompt(self, candidates: Sequence[Reminder], query: str) -> str:
        lines = [f"{i}. {r.message} ({to_iso(r.scheduled_for)})" for i, r in enumerate(candidates, start=1)]
        return "Reminders:\n" + "\n".join(lines) + f"\n\nQuery: {query}"

    async def select(
        self,
        candidates: Sequence[Reminder],
        query: str,
        max_count: Optional[int] = None
    ) -> list[Reminder]:
        """Reminders among `candidates` that match `query`, capped at max_count."""
        if not candidates or not (query or "").strip():
            return []

        if not self.available:
            return _cap(by_keyword(candidates, query), max_count)

        try:
            answer = await self.classifier.complete(
                self._build_prompt(candidates, query),
                system=SEMANTIC_SYSTEM_PROMPT,
                max_tokens=64
            )
        except Exception as e:
            logger.warning(f"Semantic matcher failed, using keyword matching: {e}")
            return _cap(by_keyword(candidates, query), max_count)

        selected = parse_selection(answer, candidates)
        if selected is None:
            logger.warning(f"Unparseable semantic matcher answer {answer!r}, using keyword matching")
            return _cap(by_keyword(candidates, query), max_count)

        logger.info(f"Semantic matcher selected {len(selected)}/{len(candidates)} reminders for {query!r}")
        return _cap(selected, max_count)
