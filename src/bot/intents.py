"""Deterministic purchase-intent matching."""

from src.config import settings


class PurchaseIntentMatcher:
    """Detects a customer confirming they want to buy.

    A message matches when any ``phrases`` entry occurs anywhere in it, or
    when the whole message equals one of ``exact_phrases`` (short answers
    like "ok" that would be too noisy as substrings).
    """

    def __init__(
        self,
        phrases: list[str] | None = None,
        exact_phrases: list[str] | None = None,
    ) -> None:
        source = settings.purchase_phrases if phrases is None else phrases
        exact = settings.purchase_exact_phrases if exact_phrases is None else exact_phrases
        self.phrases = [p.lower().strip() for p in source if p.strip()]
        self.exact_phrases = {p.lower().strip() for p in exact if p.strip()}

    def matches(self, text: str) -> bool:
        normalized = text.lower().strip()
        if not normalized:
            return False
        if normalized in self.exact_phrases:
            return True
        return any(phrase in normalized for phrase in self.phrases)
