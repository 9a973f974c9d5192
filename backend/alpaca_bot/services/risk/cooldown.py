"""Per-symbol entry cooldown (after insufficient funds or order failures)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from alpaca_bot.infrastructure.logging.logging import get_logger
from alpaca_bot.infrastructure.utils.timeutils import Clock, SystemClock


@dataclass(frozen=True)
class CooldownEntry:
    symbol: str
    until: datetime
    reason: str


class CooldownTracker:
    """Blocks new entries for a symbol until a deadline passes.

    Only the entry path consults this; exits are never blocked.
    Expired entries are removed lazily on the next check.
    """

    def __init__(self, *, duration: timedelta = timedelta(minutes=5), clock: Optional[Clock] = None) -> None:
        if duration.total_seconds() <= 0:
            raise ValueError("cooldown duration must be > 0")
        self.duration = duration
        self._clock: Clock = clock or SystemClock()
        self._entries: Dict[str, CooldownEntry] = {}
        self._log = get_logger("cooldown")

    def is_on_cooldown(self, symbol: str) -> bool:
        key = symbol.upper()
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock.now() < entry.until:
            return True
        del self._entries[key]
        self._log.debug("cooldown_expired", symbol=key)
        return False

    def start_cooldown(self, symbol: str, reason: str, duration: Optional[timedelta] = None) -> CooldownEntry:
        key = symbol.upper()
        until = self._clock.now() + (self.duration if duration is None else duration)
        entry = CooldownEntry(symbol=key, until=until, reason=reason)
        self._entries[key] = entry
        self._log.warning("cooldown_started", symbol=key, until=until.isoformat(), reason=reason)
        return entry

    def get(self, symbol: str) -> Optional[CooldownEntry]:
        if not self.is_on_cooldown(symbol):
            return None
        return self._entries[symbol.upper()]

    def active(self) -> List[CooldownEntry]:
        return [e for e in list(self._entries.values()) if self.is_on_cooldown(e.symbol)]
