"""
Balance feed client.

The feed serves the same JSON shape as the snapshot file (see io_store):
GET <SETTLEMENT_FEED_URL>/balances with a bearer token from SETTLEMENT_FEED_TOKEN.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from .config import SettlementConfig
from .io_store import snapshot_from_dict

logger = logging.getLogger(__name__)


class BalanceFeedError(Exception):
    pass


def fetch_snapshots(config: SettlementConfig) -> Dict[str, Any]:
    if not (config.feed_url and config.feed_token):
        raise BalanceFeedError("Balance feed is not configured (SETTLEMENT_FEED_URL / SETTLEMENT_FEED_TOKEN).")

    url = f"{config.feed_url}/balances"
    logger.info("Fetching balances from %s", url)
    try:
        resp = requests.get(
            url,
            headers={"Authorization": f"Bearer {config.feed_token}"},
            timeout=config.feed_timeout,
        )
    except requests.RequestException as exc:
        raise BalanceFeedError(f"Feed request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise BalanceFeedError(f"Feed error: {resp.status_code} {resp.text}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise BalanceFeedError("Feed returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise BalanceFeedError("Feed payload must be an object keyed by currency")

    for currency, entry in data.items():
        try:
            snapshot = snapshot_from_dict(currency, entry)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise BalanceFeedError(f"Malformed balances for {currency}: {exc}") from exc
        logger.debug("%s: %d sources", currency, len(snapshot.sources))
    return data
