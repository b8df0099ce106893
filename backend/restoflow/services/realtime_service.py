# Overview: Realtime notification of order status changes to connected dashboards and customers.

"""
Realtime Publishing

Kitchen screens and customer order trackers subscribe to two topics:
- restaurant:<restaurant_id>  every order of a restaurant (kitchen view)
- order:<order_id>            a single order (customer tracker)

Publishing happens after the status change is committed. A transport
failure is logged and dropped: the status change itself already
succeeded and clients refresh on reconnect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import httpx
from flask import current_app

from restoflow.time_utils import to_utc_z, utcnow


ORDER_STATUS_EVENT = "order.status_changed"


@dataclass(frozen=True)
class OrderStatusEvent:
    order_id: int
    restaurant_id: int
    status: str
    previous_status: str
    order_number: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def topics(self) -> tuple[str, str]:
        return (f"restaurant:{self.restaurant_id}", f"order:{self.order_id}")

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "restaurant_id": self.restaurant_id,
            "order_number": self.order_number,
            "status": self.status,
            "previous_status": self.previous_status,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class RealtimePublisher:
    """Interface: deliver an event to every topic it belongs to."""

    def publish(self, event: OrderStatusEvent) -> None:
        raise NotImplementedError


class NullPublisher(RealtimePublisher):
    """Used when no broadcast endpoint is configured."""

    def publish(self, event: OrderStatusEvent) -> None:
        return None


class HttpBroadcastPublisher(RealtimePublisher):
    """
    POST events to a hosted realtime broadcast endpoint.

    Body: {"messages": [{"topic": ..., "event": ..., "payload": {...}}, ...]}
    """

    def __init__(self, url: str, api_key: str | None = None, *, timeout: float = 3.0, client: httpx.Client | None = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def publish(self, event: OrderStatusEvent) -> None:
        body = {
            "messages": [
                {"topic": topic, "event": ORDER_STATUS_EVENT, "payload": event.to_dict()}
                for topic in event.topics
            ]
        }
        try:
            if self._client is not None:
                response = self._client.post(self.url, json=body, headers=self._headers(), timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=body, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL):
            current_app.logger.warning(
                "Realtime broadcast failed for order %s (%s)", event.order_id, event.status, exc_info=True
            )


def build_publisher(config) -> RealtimePublisher:
    url = config.get("REALTIME_BROADCAST_URL")
    if not url:
        return NullPublisher()
    return HttpBroadcastPublisher(
        url,
        config.get("REALTIME_API_KEY"),
        timeout=float(config.get("REALTIME_TIMEOUT_SECONDS", 3.0)),
    )


def get_publisher() -> RealtimePublisher:
    """Publisher installed on the current app by create_app."""
    return current_app.extensions["realtime_publisher"]
