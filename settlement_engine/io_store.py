from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import BalanceSource, CurrencySnapshot, DistributionResult

ROOT = Path(".")
SNAPSHOT_FILE = ROOT / "balances.json"
PLAN_FILE = ROOT / "settlement_plan.json"


def _read(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _write(path: Path, data: Mapping[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def snapshot_from_dict(currency: str, entry: Mapping[str, Any]) -> CurrencySnapshot:
    sources = [
        BalanceSource(
            source_key=item["source_key"],
            balance=str(item["balance"]),
            label=item.get("label"),
        )
        for item in entry.get("sources", [])
    ]
    return CurrencySnapshot(
        currency=currency,
        decimals=int(entry.get("decimals", 0)),
        external_balance=str(entry.get("external_balance", "0")),
        sources=sources,
    )


def snapshot_to_dict(snapshot: CurrencySnapshot) -> Dict[str, Any]:
    sources: List[Dict[str, Any]] = []
    for s in snapshot.sources:
        item: Dict[str, Any] = {"source_key": s.source_key, "balance": str(s.balance)}
        if s.label:
            item["label"] = s.label
        sources.append(item)
    return {
        "decimals": snapshot.decimals,
        "external_balance": str(snapshot.external_balance),
        "sources": sources,
    }


def load_currencies(path: Optional[Path] = None) -> List[str]:
    path = path or SNAPSHOT_FILE
    if not path.exists():
        raise FileNotFoundError(f"{path} not found.")
    return list(_read(path).keys())


def load_snapshot(currency: str, path: Optional[Path] = None) -> CurrencySnapshot:
    path = path or SNAPSHOT_FILE
    if not path.exists():
        raise FileNotFoundError(f"{path} not found.")
    data = _read(path)
    if currency not in data:
        raise KeyError(f"{path} has no balances for {currency}.")
    return snapshot_from_dict(currency, data[currency])


def save_snapshot(snapshot: CurrencySnapshot, path: Optional[Path] = None) -> None:
    path = path or SNAPSHOT_FILE
    data: Dict[str, Any] = {}
    if path.exists():
        data = _read(path)
    data[snapshot.currency] = snapshot_to_dict(snapshot)
    _write(path, data)


def save_snapshots(raw: Mapping[str, Any], path: Optional[Path] = None) -> None:
    _write(path or SNAPSHOT_FILE, raw)


def result_to_dict(result: DistributionResult) -> Dict[str, Any]:
    return {
        "total_balance": str(result.total_balance),
        "target_balance": str(result.target_balance),
        "settlement_amount": str(result.settlement_amount),
        "needs_settlement": result.needs_settlement,
        "current_ratio": result.current_ratio,
        "target_ratio": result.target_ratio,
        "distributions": [
            {
                "source_key": d.source_key,
                "label": d.label,
                "amount": str(d.amount),
                "percentage": str(d.percentage),
                "original_balance": str(d.original_balance),
                "remaining_balance": str(d.remaining_balance),
            }
            for d in result.distributions
        ],
    }


PlanEntry = Union[DistributionResult, Exception, None]


def _plan_entry(entry: PlanEntry) -> Optional[Dict[str, Any]]:
    # None: no settlement, exception: that currency failed
    if entry is None:
        return None
    if isinstance(entry, Exception):
        return {"error": str(entry)}
    return result_to_dict(entry)


def save_plan(plans: Mapping[str, PlanEntry], path: Optional[Path] = None) -> None:
    payload = {currency: _plan_entry(entry) for currency, entry in plans.items()}
    _write(path or PLAN_FILE, payload)
