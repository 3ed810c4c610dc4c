"""In-process topic broker for WebSocket fan-out.

Connections subscribe to a topic name (e.g. "/topic/messages") and every
payload published to that topic is sent to all of them. The registry is
only touched from the event loop, so no lock is needed; `publish` works
on a snapshot so subscribers may come and go while it awaits sends.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger("tutorium.broadcast")


class TopicBroker:
    def __init__(self):
        self._subscribers: dict[str, list[WebSocket]] = defaultdict(list)

    def subscribe(self, topic: str, websocket: WebSocket) -> None:
        self._subscribers[topic].append(websocket)
        logger.info("subscribed topic=%s subscribers=%s", topic, len(self._subscribers[topic]))

    def unsubscribe(self, topic: str, websocket: WebSocket) -> None:
        connections = self._subscribers.get(topic)
        if not connections:
            return
        try:
            connections.remove(websocket)
        except ValueError:
            logger.warning("unsubscribe for unknown connection topic=%s", topic)
        if not connections:
            del self._subscribers[topic]
        logger.info("unsubscribed topic=%s subscribers=%s", topic, len(self._subscribers.get(topic, [])))

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        """Send `payload` as JSON to every subscriber of `topic`.

        Connections that fail are dropped from the registry. Returns the
        number of successful deliveries.
        """
        connections = list(self._subscribers.get(topic, []))
        if not connections:
            logger.debug("no subscribers for topic=%s", topic)
            return 0
        delivered = 0
        dead: list[WebSocket] = []
        for websocket in connections:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except WebSocketDisconnect:
                dead.append(websocket)
            except RuntimeError as exc:
                # starlette raises RuntimeError when sending on a closed socket
                logger.warning("dropping subscriber on topic=%s: %s", topic, exc)
                dead.append(websocket)
        for websocket in dead:
            self.unsubscribe(topic, websocket)
        return delivered


broker = TopicBroker()
