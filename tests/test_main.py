import json
from unittest.mock import Mock

import pytest
import requests

from settlement_engine.main import fmt_units, main


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_fmt_units():
    assert fmt_units(1_666_666, 6) == "1.666666"
    assert fmt_units(123_456_789_000_000, 6) == "123,456,789.000000"
    assert fmt_units(42, 0) == "42"


def test_init_example_then_plan(workdir, capsys):
    assert main(["init-example"]) == 0
    assert (workdir / "balances.json").exists()

    assert main(["plan"]) == 0
    out = capsys.readouterr().out
    assert "== USDT" in out
    assert "Settlement Distribution for USDT:" in out
    assert "Settlement Amount: 10.000000 USDT" in out
    assert "== BTC" in out
    assert "No settlement needed" in out

    plan = json.loads((workdir / "settlement_plan.json").read_text(encoding="utf-8"))
    assert plan["BTC"] is None
    assert plan["USDT"]["settlement_amount"] == "10000000"
    assert sum(int(d["amount"]) for d in plan["USDT"]["distributions"]) == 10_000_000


def test_plan_selected_currency_with_paths(workdir, capsys):
    snapshot = workdir / "custom.json"
    output = workdir / "out.json"
    main(["init-example", "--snapshot", str(snapshot)])

    assert main(["plan", "USDT", "--snapshot", str(snapshot), "--output", str(output)]) == 0
    assert list(json.loads(output.read_text(encoding="utf-8"))) == ["USDT"]
    assert "== BTC" not in capsys.readouterr().out


def test_plan_respects_min_amount(workdir, monkeypatch, capsys):
    main(["init-example"])
    monkeypatch.setenv("SETTLEMENT_MIN_AMOUNT", "20")

    assert main(["plan", "USDT"]) == 0
    assert "No settlement needed" in capsys.readouterr().out


def test_plan_reports_invalid_balance(workdir, capsys):
    (workdir / "balances.json").write_text(
        json.dumps({"USDT": {"decimals": 6, "external_balance": "0", "sources": [{"source_key": "a", "balance": "1.5"}]}}),
        encoding="utf-8",
    )

    assert main(["plan"]) == 1
    out = capsys.readouterr().out
    assert "Error (USDT)" in out
    assert "Failed: USDT" in out

    plan = json.loads((workdir / "settlement_plan.json").read_text(encoding="utf-8"))
    assert list(plan) == ["USDT"]
    assert "not an integer amount" in plan["USDT"]["error"]


def test_plan_keeps_other_currencies_after_failure(workdir, capsys):
    (workdir / "balances.json").write_text(
        json.dumps(
            {
                "BTC": {"decimals": 8, "external_balance": "0", "sources": [{"source_key": "b", "balance": "oops"}]},
                "USDT": {
                    "decimals": 6,
                    "external_balance": "40000000",
                    "sources": [{"source_key": "a", "balance": "60000000"}],
                },
            }
        ),
        encoding="utf-8",
    )

    assert main(["plan"]) == 1
    out = capsys.readouterr().out
    assert "Error (BTC)" in out
    assert "Settlement Distribution for USDT:" in out
    assert "Failed: BTC" in out

    plan = json.loads((workdir / "settlement_plan.json").read_text(encoding="utf-8"))
    assert "oops" in plan["BTC"]["error"]
    assert plan["USDT"]["settlement_amount"] == "10000000"
    assert plan["USDT"]["distributions"][0]["amount"] == "10000000"


def test_plan_missing_file(workdir, capsys):
    assert main(["plan"]) == 1
    assert "Error:" in capsys.readouterr().out


def test_plan_unknown_currency(workdir, capsys):
    main(["init-example"])
    assert main(["plan", "DOGE"]) == 1
    assert "DOGE" in capsys.readouterr().out


def test_config_error(workdir, monkeypatch, capsys):
    monkeypatch.setenv("SETTLEMENT_POLICY", "bogus")
    assert main(["plan"]) == 2
    assert "Config error" in capsys.readouterr().out


def test_fetch_unconfigured(workdir, capsys):
    assert main(["fetch"]) == 1
    assert "not configured" in capsys.readouterr().out


def test_fetch_saves_snapshot(workdir, monkeypatch, capsys):
    payload = {"ETH": {"decimals": 18, "external_balance": "0", "sources": []}}
    resp = Mock(status_code=200, text="")
    resp.json.return_value = payload
    monkeypatch.setattr(requests, "get", Mock(return_value=resp))
    monkeypatch.setenv("SETTLEMENT_FEED_URL", "https://feed.example.com")
    monkeypatch.setenv("SETTLEMENT_FEED_TOKEN", "tok")

    assert main(["fetch"]) == 0
    assert json.loads((workdir / "balances.json").read_text(encoding="utf-8")) == payload
    assert "ETH" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_init_example_ignores_bad_config(workdir, monkeypatch, capsys):
    monkeypatch.setenv("SETTLEMENT_POLICY", "bogus")

    assert main(["init-example"]) == 0
    assert (workdir / "balances.json").exists()
    assert main(["plan"]) == 2
    assert "Config error" in capsys.readouterr().out


def test_init_example_uses_snapshot_env(workdir, monkeypatch):
    monkeypatch.setenv("SETTLEMENT_SNAPSHOT_FILE", str(workdir / "env.json"))

    assert main(["init-example"]) == 0
    assert (workdir / "env.json").exists()
