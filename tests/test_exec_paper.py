import csv

from rugradar.exec.paper import PaperTrade, append_trade, load_trades, trades_csv

MINT = "So11111111111111111111111111111111111111112"


def trade(side="buy", **kw):
    base = dict(ts=1.0, side=side, mint=MINT, price_usd=2.0, size_usd=50.0, qty_tokens=25.0, reason="BUY_CANDIDATE")
    base.update(kw)
    return PaperTrade(**base)


def test_append_trade_writes_csv_and_jsonl(tmp_path):
    append_trade(tmp_path, trade())
    append_trade(tmp_path, trade(side="sell", reason="TP_HIT", position_id=4))

    with open(trades_csv(tmp_path), newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["side"] for r in rows] == ["buy", "sell"]
    assert rows[1]["position_id"] == "4"

    loaded = load_trades(tmp_path)
    assert loaded[1].reason == "TP_HIT"
    assert loaded[1].side == "sell"


def test_load_trades_empty(tmp_path):
    assert load_trades(tmp_path) == []
