import random
from typing import Optional, Protocol

from .models import SubmissionDraft

class Scorer(Protocol):
    def score(self, draft: SubmissionDraft) -> int: ...

class RandomScorer:
    """Placeholder grade: a uniform integer in [low, high]."""

    def __init__(self, low: int = 13, high: int = 19, rng: Optional[random.Random] = None):
        if low > high:
            raise ValueError("low must not exceed high")
        self.low = low
        self.high = high
        self.rng = rng or random.Random()

    def score(self, draft: SubmissionDraft) -> int:
        return self.rng.randint(self.low, self.high)
