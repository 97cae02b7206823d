from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

import wallet_yield_demo


def test_demo_runs_on_bundled_sample(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("WALLET_YIELD_CONFIG", raising=False)
    monkeypatch.delenv("WALLET_YIELD_SNAPSHOTS", raising=False)
    monkeypatch.delenv("WALLET_YIELD_USER", raising=False)
    monkeypatch.setenv("WALLET_YIELD_OUTDIR", str(tmp_path))
    monkeypatch.setattr(sys, "argv", ["wallet_yield_demo.py"])

    wallet_yield_demo.main()

    out = capsys.readouterr().out
    assert "Snapshots loaded: 10 for 1 user(s)" in out
    assert "Position APYs:" in out
    assert "aave_v3_ethereum_lending_usdc" in out
    for kind in ("positions", "tokens", "portfolio"):
        assert (tmp_path / f"{kind}_apy.csv").exists()
    positions = pd.read_csv(tmp_path / "positions_apy.csv")
    assert set(positions["identity"]) == {
        "aave_v3_ethereum_lending_usdc",
        "uniswap_v3_arbitrum_liquidity_usdc-weth",
        "lido_ethereum_staking_steth",
    }


def test_demo_handles_empty_snapshot_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    empty = tmp_path / "empty.json"
    empty.write_text("[]")
    monkeypatch.delenv("WALLET_YIELD_CONFIG", raising=False)
    monkeypatch.delenv("WALLET_YIELD_OUTDIR", raising=False)
    monkeypatch.setenv("WALLET_YIELD_SNAPSHOTS", str(empty))
    monkeypatch.setattr(sys, "argv", ["wallet_yield_demo.py"])

    wallet_yield_demo.main()
    assert "No snapshots loaded" in capsys.readouterr().out
