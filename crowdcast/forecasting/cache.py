"""Minute-bucketed prediction cache with oldest-first eviction."""

from collections import OrderedDict
from datetime import datetime
from typing import Optional

from crowdcast.forecasting.schemas import Prediction


def minute_bucket(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M")


class PredictionCache:
    def __init__(self, max_entries: int = 50):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Prediction] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Prediction]:
        return self._entries.get(key)

    def put(self, key: str, prediction: Prediction) -> None:
        self._entries[key] = prediction
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
