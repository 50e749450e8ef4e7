"""
Repeated-action loop detection.

An agent that keeps issuing the same tool call with the same parameters is
stuck. The detector keeps a small sliding window of recent actions and
flags a loop once an identical action already occurs three times in it.
"""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActionRecord:
    action: str
    params: str
    timestamp: float


class LoopDetector:
    """
    Sliding-window tracker of recent (action, params) signatures.

    Example:
        detector = LoopDetector()
        detector.check_loop("click", {"x": 1, "y": 2})  # False
        detector.check_loop("click", {"x": 1, "y": 2})  # False
        detector.check_loop("click", {"x": 1, "y": 2})  # False
        detector.check_loop("click", {"x": 1, "y": 2})  # True
    """

    WINDOW_SIZE = 5
    TIME_WINDOW_SECONDS = 60.0
    REPEAT_THRESHOLD = 3
    SIMILARITY_THRESHOLD = 0.8

    def __init__(
        self,
        window_size: int = WINDOW_SIZE,
        time_window: float = TIME_WINDOW_SECONDS,
        repeat_threshold: int = REPEAT_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_size = window_size
        self._time_window = time_window
        self._repeat_threshold = repeat_threshold
        self._clock = clock
        self._recent: deque[ActionRecord] = deque()

    def check_loop(self, action: str, params: Any) -> bool:
        """
        Record an action and report whether it repeats too often.

        A detected repetition is not recorded, so the window keeps
        describing what actually ran.
        """
        now = self._clock()
        signature = self._serialize(params)

        while self._recent and now - self._recent[0].timestamp >= self._time_window:
            self._recent.popleft()

        similar = [
            record
            for record in self._recent
            if record.action == action
            and self.similarity(record.params, signature) > self.SIMILARITY_THRESHOLD
        ]
        if len(similar) >= self._repeat_threshold:
            logger.warning(
                f"[loop_detector] {action} repeated {len(similar)} times "
                f"within {self._time_window:.0f}s"
            )
            return True

        self._recent.append(ActionRecord(action=action, params=signature, timestamp=now))
        if len(self._recent) > self._window_size:
            self._recent.popleft()

        return False

    def similarity(self, a: str, b: str) -> float:
        """
        Similarity between two serialized parameter sets.

        Exact match only for now. A distance metric would need its own
        threshold tuning before replacing this.
        """
        return 1.0 if a == b else 0.0

    def reset(self) -> None:
        self._recent.clear()

    def __len__(self) -> int:
        return len(self._recent)

    @staticmethod
    def _serialize(params: Any) -> str:
        return json.dumps(params, sort_keys=True, default=str)
