"""Dataclasses representing persisted bot state."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class PriceHistory:
    last_price: Optional[float] = None
    last_update: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.last_price is not None and not is_valid_price(self.last_price):
            raise ValueError(f"invalid last price: {self.last_price!r}")


def is_valid_price(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0
