"""Token estimation for plan text.

Plan sheets are dense with dimensions, abbreviations and grid labels, which
makes word-based estimates unreliable. Chunk budgets therefore use a flat
character ratio; it only has to be consistent, not exact.
"""

from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TokenCounter:
    """Character-ratio token estimator (about four characters per token)."""

    TOKENS_PER_CHAR = 0.25

    def count_tokens(self, text: str) -> int:
        """Estimate tokens in ``text``.

        Example:
            >>> TokenCounter().count_tokens("FOOTING F1 24x24")
            4
        """
        if not text:
            return 0
        return self.tokens_for_length(len(text))

    def tokens_for_length(self, char_count: int) -> int:
        return int(char_count * self.TOKENS_PER_CHAR)

    def chars_for_tokens(self, token_count: int) -> int:
        """Character budget that stays within ``token_count`` tokens."""
        if token_count <= 0:
            return 0
        return int(token_count / self.TOKENS_PER_CHAR)

    def can_fit_in_limit(self, text: str, limit: int) -> bool:
        return self.count_tokens(text) <= limit
