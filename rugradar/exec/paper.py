from dataclasses import dataclass, asdict
from typing import List
import csv
import json
import pathlib


@dataclass
class PaperTrade:
    ts: float
    side: str  # "buy" or "sell"
    mint: str
    price_usd: float
    size_usd: float
    qty_tokens: float
    reason: str
    position_id: int = 0


FIELDNAMES = ["ts", "side", "mint", "price_usd", "size_usd", "qty_tokens", "reason", "position_id"]


def trades_csv(root: pathlib.Path) -> pathlib.Path:
    return pathlib.Path(root) / "paper_trades.csv"


def trades_jsonl(root: pathlib.Path) -> pathlib.Path:
    return pathlib.Path(root) / "paper_trades.jsonl"


def append_trade(root: pathlib.Path, trade: PaperTrade) -> PaperTrade:
    """Simulated fill: always succeeds, only writes the local trade log."""
    file_path = trades_csv(root)
    write_header = not file_path.exists() or file_path.stat().st_size == 0
    with file_path.open("a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        if write_header:
            writer.writeheader()
        writer.writerow(asdict(trade))

    with trades_jsonl(root).open("a") as f:
        f.write(json.dumps(asdict(trade)) + "\n")
    return trade


def load_trades(root: pathlib.Path) -> List[PaperTrade]:
    path = trades_jsonl(root)
    if not path.exists():
        return []
    with path.open() as f:
        return [PaperTrade(**json.loads(line)) for line in f if line.strip()]
