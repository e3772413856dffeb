"""Data structures for batch translation."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

# Receives the fraction of translatable entries settled so far, in [0, 0.99]
ProgressCallback = Callable[[float], None]


class TranslationClient(Protocol):
    """Remote text translation used by the batch pipeline."""

    async def translate_batch(
        self,
        texts: List[str],
        source_language: str,
        target_language: str,
        custom_prompt: str = "",
    ) -> List[str]:
        """Return translations in the same order as ``texts``, or raise."""
        ...


@dataclass
class BatchResult:
    """Outcome of one translation batch."""

    index: int
    size: int
    ok: bool
    error: Optional[str] = None
    # Positions that came back empty and kept their original text
    fallback_positions: List[int] = field(default_factory=list)


@dataclass
class PipelineReport:
    """Per-batch outcomes of one pipeline run."""

    total_entries: int = 0
    results: List[BatchResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[BatchResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> List[BatchResult]:
        return [result for result in self.results if not result.ok]

    @property
    def translated_entries(self) -> int:
        return sum(
            result.size - len(result.fallback_positions) for result in self.succeeded
        )


class ProgressAccumulator:
    """
    Running count of settled entries for one pipeline run.

    Reported fractions never decrease and stay at or below ``cap``; the
    caller signals completion itself once the whole file is done.
    """

    def __init__(
        self,
        total: int,
        callback: Optional[ProgressCallback] = None,
        cap: float = 0.99,
    ):
        self.total = total
        self.completed = 0
        self.callback = callback
        self.cap = cap
        self._last_reported = 0.0

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(self.completed / self.total, self.cap)

    def advance(self, count: int) -> float:
        """Record ``count`` more settled entries and notify the callback."""
        self.completed += count
        fraction = max(self.fraction, self._last_reported)
        self._last_reported = fraction
        if self.callback is not None:
            self.callback(fraction)
        return fraction
