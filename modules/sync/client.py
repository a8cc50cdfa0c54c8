"""
Sync Module - Client
======================
Client-side cache of the views a customer or canteen admin looks at:
canteens, menu, cart, orders and admin_orders.

Each view is a ViewSnapshot. A refresh replaces the snapshot only when
the fetch succeeds; on failure the last good data stays and the error
is recorded. Mutations go straight to the API and apply the server's
answer locally. A refresh that started before a mutation finished is
discarded rather than allowed to overwrite the newer data.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import httpx

from common.exceptions import CafePreorderError, PersistenceError, error_from_payload
from common.helpers import now_utc
from config.settings import SYNC_HTTP_TIMEOUT_SECONDS, SYNC_PAGE_LIMIT
from modules.sync.local_state import LocalStateStore, SELECTED_CANTEEN, SESSION_TOKEN

logger = logging.getLogger("cafepreorder.sync.client")

VIEWS = ("canteens", "menu", "cart", "orders", "admin_orders")


@dataclass
class ViewSnapshot:
    data: Any = None
    fetched_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self.fetched_at is not None


class SyncClient:

    def __init__(
        self, base_url: str = "", token: Optional[str] = None,
        state_store: Optional[LocalStateStore] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = SYNC_HTTP_TIMEOUT_SECONDS,
    ):
        self.http = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self.state = state_store or LocalStateStore()
        self.token = token or self.state.get(SESSION_TOKEN)
        if token:
            self.state.set(SESSION_TOKEN, token)

        self.selected_canteen: Optional[int] = self.state.get(SELECTED_CANTEEN)
        self.admin_canteen_id: Optional[int] = None
        self.cursor = 0

        self.snapshots: Dict[str, ViewSnapshot] = {v: ViewSnapshot() for v in VIEWS}
        self._generation: Dict[str, int] = {v: 0 for v in VIEWS}

        # Refresh and mutation never wait on each other; _state_lock only
        # guards the in-memory swap.
        self._refresh_locks = {v: threading.Lock() for v in VIEWS}
        self._mutation_lock = threading.Lock()
        self._state_lock = threading.Lock()

    # ==========================================
    # Session
    # ==========================================

    def set_token(self, token: Optional[str]):
        self.token = token
        if token:
            self.state.set(SESSION_TOKEN, token)
        else:
            self.state.delete(SESSION_TOKEN)

    def load_profile(self) -> dict:
        """Who am I; remembers the admin's canteen for the admin_orders view."""
        data = self._request("GET", "/api/auth/me")
        self.admin_canteen_id = data.get("canteen_id")
        return data

    def active_views(self) -> List[str]:
        views = ["canteens"]
        if self.selected_canteen:
            views.append("menu")
        if self.token:
            views.extend(["cart", "orders"])
        if self.admin_canteen_id:
            views.append("admin_orders")
        return views

    # ==========================================
    # Refresh
    # ==========================================

    def snapshot(self, view: str) -> ViewSnapshot:
        with self._state_lock:
            return self.snapshots[view]

    def refresh(self, view: str) -> ViewSnapshot:
        """
        Fetch the full view. On success swap the snapshot; on failure keep
        the previous data, record the error and raise PersistenceError.
        """
        with self._refresh_locks[view]:
            with self._state_lock:
                generation = self._generation[view]
            try:
                data = self._fetch(view)
            except CafePreorderError as e:
                with self._state_lock:
                    previous = self.snapshots[view]
                    self.snapshots[view] = ViewSnapshot(previous.data, previous.fetched_at, e.message)
                logger.warning(f"Refresh of {view} failed, keeping previous data: {e.message}")
                raise PersistenceError(f"Could not refresh {view}: {e.message}") from e

            with self._state_lock:
                if self._generation[view] != generation:
                    logger.debug(f"Discarding {view} refresh overtaken by a local change")
                    return self.snapshots[view]
                self.snapshots[view] = ViewSnapshot(data, now_utc(), None)
                return self.snapshots[view]

    def refresh_all(self) -> Dict[str, Optional[str]]:
        """Refresh every active view. Returns view -> error message (None when fine)."""
        results = {}
        for view in self.active_views():
            try:
                self.refresh(view)
                results[view] = None
            except PersistenceError as e:
                results[view] = e.message
        return results

    def poll_changes(self) -> Set[str]:
        """Read the change feed from the last cursor and refresh only the views it touches."""
        touched: Set[str] = set()
        while True:
            data = self._request("GET", "/api/sync/changes", params={"since": self.cursor, "limit": SYNC_PAGE_LIMIT})
            for change in data.get("changes", []):
                touched.update(change.get("views", []))
            self.cursor = max(self.cursor, int(data.get("cursor", self.cursor)))
            if not data.get("has_more"):
                break

        refreshed = set()
        for view in touched & set(self.active_views()):
            try:
                self.refresh(view)
                refreshed.add(view)
            except PersistenceError:
                # The next scheduled full refresh retries this view
                continue
        return refreshed

    def _fetch(self, view: str) -> Any:
        if view == "canteens":
            return self._request("GET", "/api/canteens")["canteens"]
        if view == "menu":
            if not self.selected_canteen:
                return []
            return self._request("GET", f"/api/canteens/{self.selected_canteen}/menu")["items"]
        if view == "cart":
            return self._request("GET", "/api/cart")["cart"]
        if view == "orders":
            return self._request("GET", "/api/orders")["orders"]
        if view == "admin_orders":
            if not self.admin_canteen_id:
                return []
            return self._request("GET", f"/api/admin/canteens/{self.admin_canteen_id}/orders")["orders"]
        raise KeyError(view)

    # ==========================================
    # Mutations
    # ==========================================

    def select_canteen(self, canteen_id: int) -> dict:
        with self._mutation_lock:
            canteen = self._request("GET", f"/api/canteens/{canteen_id}")["canteen"]
            self.selected_canteen = canteen_id
            self.state.set(SELECTED_CANTEEN, canteen_id)
            self._bump("menu")
        self.refresh("menu")
        return canteen

    def add_to_cart(self, menu_item_id: int, quantity: int = 1) -> dict:
        return self._cart_mutation("POST", "/api/cart/items", json={"menu_item_id": menu_item_id, "quantity": quantity})

    def update_cart_line(self, line_id: int, quantity: int) -> dict:
        return self._cart_mutation("PATCH", f"/api/cart/items/{line_id}", json={"quantity": quantity})

    def remove_cart_line(self, line_id: int) -> dict:
        return self._cart_mutation("DELETE", f"/api/cart/items/{line_id}")

    def clear_cart(self) -> dict:
        return self._cart_mutation("DELETE", "/api/cart")

    def place_order(self, pickup_time: datetime, notes: Optional[str] = None, canteen_id: Optional[int] = None) -> dict:
        canteen_id = canteen_id or self.selected_canteen
        with self._mutation_lock:
            order = self._request("POST", "/api/orders", json={
                "canteen_id": canteen_id,
                "pickup_time": pickup_time.isoformat(),
                "notes": notes,
            })["order"]
            with self._state_lock:
                current = self.snapshots["orders"].data or []
                self._set("orders", [order] + [o for o in current if o["id"] != order["id"]])
        return order

    def start_payment(self, order_id: int, gateway: str) -> dict:
        with self._mutation_lock:
            return self._request("POST", f"/api/orders/{order_id}/payment", json={"gateway": gateway})

    def advance_order(self, order_id: int, expected_status: Optional[str] = None) -> dict:
        with self._mutation_lock:
            order = self._request(
                "POST", f"/api/admin/orders/{order_id}/advance",
                json={"expected_status": expected_status},
            )["order"]
            with self._state_lock:
                current = self.snapshots["admin_orders"].data or []
                self._set("admin_orders", [order if o["id"] == order["id"] else o for o in current])
        return order

    def toggle_acceptance(self, canteen_id: int) -> bool:
        """Flip the flag locally first; put it back if the server refuses."""
        with self._mutation_lock:
            with self._state_lock:
                previous = self._canteen_flag(canteen_id)
                if previous is not None:
                    self._set_canteen_flag(canteen_id, not previous)
            try:
                data = self._request("POST", f"/api/admin/canteens/{canteen_id}/toggle-acceptance")
            except CafePreorderError:
                with self._state_lock:
                    if previous is not None:
                        self._set_canteen_flag(canteen_id, previous)
                logger.warning(f"Toggle for canteen #{canteen_id} failed, restored local flag")
                raise
            accepting = bool(data["accepting_orders"])
            with self._state_lock:
                self._set_canteen_flag(canteen_id, accepting)
            return accepting

    # ==========================================
    # Private helpers
    # ==========================================

    def _cart_mutation(self, method: str, path: str, **kwargs) -> dict:
        with self._mutation_lock:
            cart = self._request(method, path, **kwargs)["cart"]
            with self._state_lock:
                self._set("cart", cart)
            return cart

    def _bump(self, view: str):
        with self._state_lock:
            self._generation[view] += 1

    def _set(self, view: str, data: Any):
        """Apply a mutation result. Caller holds _state_lock."""
        self._generation[view] += 1
        self.snapshots[view] = ViewSnapshot(data, now_utc(), None)

    def _canteen_flag(self, canteen_id: int) -> Optional[bool]:
        for c in self.snapshots["canteens"].data or []:
            if c["id"] == canteen_id:
                return bool(c["accepting_orders"])
        return None

    def _set_canteen_flag(self, canteen_id: int, value: bool):
        snapshot = self.snapshots["canteens"]
        if snapshot.data is None:
            return
        data = [dict(c, accepting_orders=value) if c["id"] == canteen_id else c for c in snapshot.data]
        self._generation["canteens"] += 1
        self.snapshots["canteens"] = ViewSnapshot(data, snapshot.fetched_at, snapshot.error)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise PersistenceError(f"Request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise PersistenceError(f"Could not reach the server: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.is_success:
            return payload
        if isinstance(payload, dict) and payload.get("error"):
            raise error_from_payload(payload, resp.status_code)
        if resp.status_code >= 500:
            raise PersistenceError(f"Server error (HTTP {resp.status_code}).")
        raise CafePreorderError(f"Request failed (HTTP {resp.status_code}).")
