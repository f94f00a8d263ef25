"""ECOMMIND — Retry / Backoff Policy.

One policy object shared by every vendor adapter's request executor.
"""

from dataclasses import dataclass
from typing import Optional

from ecommind.config import settings


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: delay(n) = min(base * multiplier**n, max_delay)."""

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    retry_after_ceiling: float = 3600.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0 or self.retry_after_ceiling < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def delay(self, attempt: int) -> float:
        """Backoff for a 0-indexed attempt; non-decreasing, never above max_delay."""
        if attempt < 0:
            attempt = 0
        try:
            raw = self.base_delay * (self.multiplier**attempt)
        except OverflowError:
            return self.max_delay
        return min(raw, self.max_delay)

    def retry_after(self, header: Optional[str], attempt: int) -> float:
        """Delay for a 429: the vendor's Retry-After seconds, else the backoff.

        The header is honoured as given, even above max_delay; only
        retry_after_ceiling bounds it.
        """
        if header:
            try:
                seconds = float(header)
                if seconds >= 0:
                    return min(seconds, self.retry_after_ceiling)
            except ValueError:
                pass  # HTTP-date form: use computed backoff
        return self.delay(attempt)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            multiplier=settings.retry_multiplier,
            retry_after_ceiling=settings.retry_after_ceiling,
        )
