import os

import pytest

from settlement_engine.models import BalanceSource


@pytest.fixture(autouse=True)
def clean_settlement_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SETTLEMENT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def usdt_sources():
    return [
        BalanceSource("eip155:1", "10000000", "Ethereum"),
        BalanceSource("eip155:56", "20000000", "BSC"),
        BalanceSource("solana:mainnet", "30000000", "Solana"),
    ]


@pytest.fixture
def make_sources():
    def _make(*balances):
        return [BalanceSource(f"src-{i}", b) for i, b in enumerate(balances)]

    return _make
