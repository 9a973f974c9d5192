"""In-memory metrics snapshot for the API + console."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SymbolRow:
    symbol: str
    close: Optional[str] = None
    change_abs: Optional[str] = None
    change_pct: Optional[str] = None
    decision: str = "HOLD"
    note: Optional[str] = None


@dataclass
class MetricsSnapshot:
    environment: str = ""
    symbols: List[str] = field(default_factory=list)
    market_open: Optional[bool] = None
    cycles: int = 0
    last_cycle_started_at: Optional[str] = None
    last_cycle_ms: Optional[int] = None
    last_rows: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    cooldowns: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
