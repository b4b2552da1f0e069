"""
Storefront client with a local order cache

The cache is a convenience for showing "my recent orders" without a round
trip. It is not a source of truth: entries can be stale (status changes made
by an admin never reach it) and, when the server rejects or never receives an
order, the optimistic local copy stays behind marked `synced: false`.
Always call `get_order` for the authoritative state.
"""
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

MAX_CACHED_ORDERS = 50


class LocalOrderCache:
    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {"orders": [], "last_order_id": None}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable order cache %s: %s", self.path, e)
            return {"orders": [], "last_order_id": None}
        if not isinstance(data, dict) or not isinstance(data.get("orders"), list):
            return {"orders": [], "last_order_id": None}
        return data

    def orders(self) -> List[dict]:
        return self._read()["orders"]

    def last_order_id(self) -> Optional[str]:
        return self._read().get("last_order_id")

    def record(self, order: dict):
        data = self._read()
        kept = [o for o in data["orders"] if o.get("id") != order["id"]]
        data["orders"] = ([order] + kept)[:MAX_CACHED_ORDERS]
        data["last_order_id"] = order["id"]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to persist local order %s: %s", order["id"], e)


class StorefrontClient:
    def __init__(self, http: httpx.Client, cache: LocalOrderCache, token: Optional[str] = None):
        self.http = http
        self.cache = cache
        self.token = token

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def place_order(self, payload: dict) -> dict:
        """POST the checkout payload and cache a local copy whatever the outcome."""
        try:
            res = self.http.post("/orders", json=payload, headers=self._headers())
            body = res.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Order submission failed: %s", e)
            body = {"ok": False, "message": str(e) or "Network error"}
        if not isinstance(body, dict):
            logger.error("Unexpected order response: %r", body)
            body = {"ok": False, "message": "Unexpected response from server"}

        if body.get("ok"):
            data = body["data"]
            entry = {"id": data["id"], "status": data["status"], "total": data["total"], "synced": True}
        else:
            entry = {
                "id": f"local_{int(time.time() * 1000)}",
                "status": "pending",
                "total": payload.get("total"),
                "synced": False,
            }
        entry.update(
            {
                "paymentMethod": payload.get("paymentMethod"),
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "items": [
                    {k: it.get(k) for k in ("id", "title", "price", "qty", "image")}
                    for it in payload.get("items", [])
                ],
            }
        )
        self.cache.record(entry)
        return body

    def get_order(self, order_id: str) -> dict:
        res = self.http.get(f"/orders/{order_id}", headers=self._headers())
        return res.json()
