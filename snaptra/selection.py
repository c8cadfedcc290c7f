import math
from typing import Iterable, Optional, Tuple

from .models import Word

DEFAULT_HIT_TOLERANCE = 0.01


class WordSelector:
    """Pick the word under (or nearest to) the cursor"""

    def __init__(self, tolerance: float = DEFAULT_HIT_TOLERANCE):
        self.tolerance = tolerance

    def select(self, words: Iterable[Word], point: Tuple[float, float]) -> Optional[Word]:
        """Return the hit word whose box centre is closest to point, or None when nothing is hit"""
        px, py = point
        candidates = [w for w in words if w.bounding_box.expanded(self.tolerance).contains(px, py)]
        if not candidates:
            return None

        def distance(word: Word) -> float:
            cx, cy = word.bounding_box.center
            return math.hypot(cx - px, cy - py)

        return min(candidates, key=distance)
