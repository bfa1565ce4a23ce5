from rugradar.exec.paper import PaperTrade, append_trade
from rugradar.storage import Store
from rugradar.tools import pnl_cli

MINT = "So11111111111111111111111111111111111111112"


def test_pnl_cli_prints_summary(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("RUGRADAR_DATA_DIR", str(tmp_path))
    store = Store(tmp_path)
    pos = store.create_position(
        1, mint=MINT, mode="paper", entry_price_usd=1.0, size_usd=10, qty_tokens=10,
        tp_pct=20, sl_pct=10, trailing_stop_pct=8, max_hold_minutes=240,
    )
    store.close_position(1, pos.id, 1.25, "TP_HIT")
    append_trade(tmp_path, PaperTrade(0.0, "buy", MINT, 1.0, 10, 10, "autotrade", pos.id))
    append_trade(tmp_path, PaperTrade(1.0, "sell", MINT, 1.25, 12.5, 10, "TP_HIT", pos.id))

    pnl_cli.main(user_id=1)

    out = capsys.readouterr().out
    assert "closed=1 winners=1 losers=0" in out
    assert "total=25.00%" in out
    assert MINT in out
    assert "paper_trades=2 buys=1 sells=1" in out


def test_pnl_cli_no_positions(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv("RUGRADAR_DATA_DIR", str(tmp_path))
    pnl_cli.main(user_id=1)
    out = capsys.readouterr().out
    assert "closed=0" in out
    assert "paper_trades=0" in out
    assert "Per-mint summary:" not in out
