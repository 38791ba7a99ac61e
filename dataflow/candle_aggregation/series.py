"""
Candle Series

Bounded, ordered sequence of candles, unique by bucket start.
Each series is owned by exactly one aggregator; readers only ever see
immutable snapshots.
"""

from collections import deque
from typing import Deque, Iterable, Iterator, Optional, Tuple

from schemas.market_data import Candle

DEFAULT_MAX_SERIES_LENGTH = 100


class CandleSeries:
    """
    Candle buffer with oldest-first eviction.

    Backed by a deque with maxlen, so appending past the bound drops the
    oldest candle. Callers are responsible for keeping bucket starts
    ascending and unique; the aggregators are the only writers.
    """

    def __init__(self, max_length: int = DEFAULT_MAX_SERIES_LENGTH):
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self._candles: Deque[Candle] = deque(maxlen=max_length)

    @property
    def max_length(self) -> int:
        return self._candles.maxlen

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __getitem__(self, index: int) -> Candle:
        return self._candles[index]

    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def first(self) -> Optional[Candle]:
        return self._candles[0] if self._candles else None

    def is_full(self) -> bool:
        return len(self._candles) == self._candles.maxlen

    def append(self, candle: Candle) -> None:
        self._candles.append(candle)

    def replace_last(self, candle: Candle) -> None:
        """Swap the tail candle for an updated copy"""
        self._candles[-1] = candle

    def index_of(self, bucket_start: int) -> Optional[int]:
        for i, candle in enumerate(self._candles):
            if candle.bucket_start == bucket_start:
                return i
        return None

    def replace_at(self, index: int, candle: Candle) -> None:
        self._candles[index] = candle

    def reset(self, candles: Iterable[Candle]) -> None:
        """
        Replace the contents with the newest entries of an ordered iterable.

        Args:
            candles: Candles sorted ascending by bucket start
        """
        self._candles = deque(candles, maxlen=self._candles.maxlen)

    def snapshot(self) -> Tuple[Candle, ...]:
        """Immutable copy of the current contents, oldest first"""
        return tuple(self._candles)
