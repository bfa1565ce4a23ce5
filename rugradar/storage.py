"""File-backed persistence for users, configs, signals, runs and positions.

Signals and autotrade runs are append-only JSONL. Positions are a JSONL file
rewritten on every change; config singletons and watchlists are JSON maps keyed
by user id (last write wins).
"""

import json
import os
import pathlib
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from rugradar.config import AutoTradePolicyConfig, ExecutionConfig, settings
from rugradar.types import AutoTradeRun, Position, Signal, StoredSignal, User


def _data_dir() -> pathlib.Path:
    d = pathlib.Path(os.getenv("RUGRADAR_DATA_DIR", settings.data_dir))
    d.mkdir(parents=True, exist_ok=True)
    return d


def _read_jsonl(path: pathlib.Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


def _write_jsonl(path: pathlib.Path, rows: List[Dict[str, Any]]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        for r in rows:
            f.write(json.dumps(r) + "\n")
    os.replace(tmp, path)


def _append_jsonl(path: pathlib.Path, row: Dict[str, Any]) -> None:
    with open(path, "a") as f:
        f.write(json.dumps(row) + "\n")


def _read_json(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        return json.load(f)


def _write_json(path: pathlib.Path, data: Dict[str, Any]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)


def _last_id(path: pathlib.Path, chunk_size: int = 4096) -> int:
    """Id of the final record in an append-only JSONL file, reading only its tail."""
    if not path.exists():
        return 0
    with open(path, "rb") as f:
        pos = f.seek(0, os.SEEK_END)
        tail = b""
        while pos > 0:
            step = min(chunk_size, pos)
            pos -= step
            f.seek(pos)
            tail = f.read(step) + tail
            # the last line is complete once a newline precedes it
            if b"\n" in tail.rstrip():
                break
    lines = [line for line in tail.splitlines() if line.strip()]
    if not lines:
        return 0
    return int(json.loads(lines[-1]).get("id", 0))


class Store:
    def __init__(self, data_dir: Optional[str | pathlib.Path] = None, clock: Callable[[], float] = time.time):
        self.root = pathlib.Path(data_dir) if data_dir is not None else _data_dir()
        self.root.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self._lock = threading.RLock()

    def _path(self, name: str) -> pathlib.Path:
        return self.root / name

    # --- users ---
    def get_user(self, user_id: int) -> User:
        data = _read_json(self._path("users.json"))
        return User(**data.get(str(user_id), {"id": user_id}))

    def set_plan(self, user_id: int, plan: str) -> User:
        with self._lock:
            data = _read_json(self._path("users.json"))
            user = User(id=user_id, plan=plan)
            data[str(user_id)] = user.model_dump()
            _write_json(self._path("users.json"), data)
            return user

    # --- watchlists ---
    def get_watchlist(self, user_id: int) -> List[str]:
        return list(_read_json(self._path("watchlists.json")).get(str(user_id), []))

    def put_watchlist(self, user_id: int, mints: List[str]) -> List[str]:
        with self._lock:
            data = _read_json(self._path("watchlists.json"))
            data[str(user_id)] = list(dict.fromkeys(mints))
            _write_json(self._path("watchlists.json"), data)
            return data[str(user_id)]

    # --- config singletons ---
    def get_autotrade_config(self, user_id: int) -> AutoTradePolicyConfig:
        raw = _read_json(self._path("autotrade_config.json")).get(str(user_id))
        return AutoTradePolicyConfig(**raw) if raw else AutoTradePolicyConfig()

    def put_autotrade_config(self, user_id: int, config: AutoTradePolicyConfig) -> AutoTradePolicyConfig:
        with self._lock:
            data = _read_json(self._path("autotrade_config.json"))
            data[str(user_id)] = config.model_dump()
            _write_json(self._path("autotrade_config.json"), data)
        return config

    def get_execution_config(self, user_id: int) -> ExecutionConfig:
        raw = _read_json(self._path("execution_config.json")).get(str(user_id))
        return ExecutionConfig(**raw) if raw else ExecutionConfig()

    def put_execution_config(self, user_id: int, config: ExecutionConfig) -> ExecutionConfig:
        with self._lock:
            data = _read_json(self._path("execution_config.json"))
            data[str(user_id)] = config.model_dump()
            _write_json(self._path("execution_config.json"), data)
        return config

    # --- signals (append-only) ---
    def save_signal(self, user_id: int, signal: Signal) -> StoredSignal:
        with self._lock:
            path = self._path("signals.jsonl")
            record = StoredSignal(id=_last_id(path) + 1, user_id=user_id, created_at=self.clock(), signal=signal)
            _append_jsonl(path, record.model_dump(mode="json"))
            return record

    def list_signals(self, user_id: int, limit: int = 50) -> List[StoredSignal]:
        rows = [r for r in _read_jsonl(self._path("signals.jsonl")) if r.get("user_id") == user_id]
        return [StoredSignal.model_validate(r) for r in reversed(rows[-limit:])]

    # --- autotrade runs (append-only) ---
    def save_autotrade_run(self, user_id: int, **fields: Any) -> AutoTradeRun:
        with self._lock:
            path = self._path("autotrade_runs.jsonl")
            run = AutoTradeRun(id=_last_id(path) + 1, user_id=user_id, created_at=self.clock(), **fields)
            _append_jsonl(path, run.model_dump())
            return run

    def list_autotrade_runs(self, user_id: int, limit: int = 30) -> List[AutoTradeRun]:
        rows = [r for r in _read_jsonl(self._path("autotrade_runs.jsonl")) if r.get("user_id") == user_id]
        return [AutoTradeRun.model_validate(r) for r in reversed(rows[-limit:])]

    # --- positions ---
    def _positions(self) -> List[Position]:
        return [Position.model_validate(r) for r in _read_jsonl(self._path("positions.jsonl"))]

    def _save_positions(self, positions: List[Position]) -> None:
        _write_jsonl(self._path("positions.jsonl"), [p.model_dump() for p in positions])

    def list_positions(self, user_id: int, status: Optional[str] = None) -> List[Position]:
        """Newest first."""
        rows = [p for p in self._positions() if p.user_id == user_id and (status is None or p.status == status)]
        return sorted(rows, key=lambda p: p.id, reverse=True)

    def create_position(self, user_id: int, **fields: Any) -> Position:
        with self._lock:
            positions = self._positions()
            entry = float(fields["entry_price_usd"])
            opened_at = fields.pop("opened_at", None) or self.clock()
            pos = Position(
                id=max((p.id for p in positions), default=0) + 1,
                user_id=user_id,
                status="OPEN",
                high_water_price_usd=entry,
                last_price_usd=entry,
                opened_at=opened_at,
                **fields,
            )
            positions.append(pos)
            self._save_positions(positions)
            return pos

    def update_position_mark(self, user_id: int, position_id: int, mark_price_usd: float) -> Optional[Position]:
        with self._lock:
            positions = self._positions()
            for i, p in enumerate(positions):
                if p.id == position_id and p.user_id == user_id and p.status == "OPEN":
                    positions[i] = p.model_copy(
                        update={
                            "last_price_usd": mark_price_usd,
                            "high_water_price_usd": max(p.high_water_price_usd, mark_price_usd),
                        }
                    )
                    self._save_positions(positions)
                    return positions[i]
            return None

    def close_position(
        self,
        user_id: int,
        position_id: int,
        mark_price_usd: float,
        close_reason: str,
        closed_at: Optional[float] = None,
    ) -> Optional[Position]:
        """OPEN -> CLOSED once; returns None if the position is missing or already closed."""
        with self._lock:
            positions = self._positions()
            for i, p in enumerate(positions):
                if p.id == position_id and p.user_id == user_id and p.status == "OPEN":
                    positions[i] = p.model_copy(
                        update={
                            "status": "CLOSED",
                            "last_price_usd": mark_price_usd,
                            "closed_at": closed_at if closed_at is not None else self.clock(),
                            "close_reason": close_reason,
                            "pnl_pct": (mark_price_usd - p.entry_price_usd) / p.entry_price_usd * 100,
                        }
                    )
                    self._save_positions(positions)
                    return positions[i]
            return None
