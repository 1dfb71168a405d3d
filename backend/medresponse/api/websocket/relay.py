"""
Broadcast relay — interprets inbound real-time messages, records their side
effects through the storage collaborator and fans the resulting events out to
the other open connections.

Inbound messages are JSON objects with a ``type`` discriminator:

    location_update        {id, latitude, longitude, accuracy?, role?}
    emergency_broadcast    {userId, location{latitude, longitude, accuracy?},
    emergency_alert         emergencyType?, description?, severity?}
    ping / pong            keep-alive

Fields may also be wrapped in a ``data`` object, as the browser client sends
them; top-level fields win.

Delivery is best-effort: no ordering across recipients, no acknowledgement
and no replay for connections that join later. A peer whose send fails is
dropped from the registry; the remaining peers still receive the event.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any, Optional

from medresponse.api.websocket.registry import Connection, ConnectionRegistry
from medresponse.api.websocket.storage import RelayStorage
from medresponse.errors import RelayMessageError
from medresponse.models.emergency_alert import EmergencyPriority
from medresponse.services.emergency_service import AlertOrigin

logger = logging.getLogger(__name__)

LOCATION_UPDATE = "location_update"
EMERGENCY_BROADCAST = "emergency_broadcast"
EMERGENCY_ALERT = "emergency_alert"  # older clients
EMERGENCY_STATUS_UPDATE = "emergency_status_update"
RESOURCES_ASSIGNED = "resources_assigned"
AMBULANCE_LOCATION_UPDATE = "ambulance_location_update"
ERROR = "error"

_PRIORITIES = {p.value for p in EmergencyPriority}


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------

def _flatten(message: dict[str, Any]) -> dict[str, Any]:
    data = message.get("data")
    if isinstance(data, dict):
        return {**data, **{k: v for k, v in message.items() if k != "data"}}
    return message


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _subject_id(fields: dict[str, Any], key: str, what: str) -> int:
    value = fields.get(key)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise RelayMessageError(f"Invalid {what}: '{key}' is required")


def _coordinate(fields: dict[str, Any], key: str, bound: float, what: str) -> float:
    value = fields.get(key)
    if not _is_number(value):
        raise RelayMessageError(f"Invalid {what}: '{key}' must be a number")
    if not -bound <= value <= bound:
        raise RelayMessageError(f"Invalid {what}: '{key}' out of range")
    return float(value)


def _optional_number(fields: dict[str, Any], key: str, what: str) -> Optional[float]:
    value = fields.get(key)
    if value is None:
        return None
    if not _is_number(value) or value < 0:
        raise RelayMessageError(f"Invalid {what}: '{key}' must be a non-negative number")
    return float(value)


def _now_ms() -> int:
    return int(time.time() * 1000)


class BroadcastRelay:
    def __init__(self, registry: ConnectionRegistry, storage: RelayStorage):
        self.registry = registry
        self.storage = storage
        self._handlers = {
            LOCATION_UPDATE: self._on_location_update,
            EMERGENCY_BROADCAST: self._on_emergency,
            EMERGENCY_ALERT: self._on_emergency,
            "ping": self._on_ping,
            "pong": self._on_pong,
        }

    # --- Inbound ---

    async def handle_text(self, connection: Connection, raw: str) -> None:
        """Entry point for one raw text frame from *connection*."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Invalid JSON from %r", connection)
            await self.send_error(connection, "Invalid message format")
            return
        if not isinstance(message, dict):
            await self.send_error(connection, "Invalid message format")
            return
        await self.handle_message(connection, message)

    async def handle_message(self, connection: Connection, message: dict[str, Any]) -> None:
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            detail = "Invalid message format" if not msg_type else f"Unsupported message type: {msg_type}"
            await self.send_error(connection, detail)
            return
        try:
            await handler(connection, msg_type, _flatten(message))
        except RelayMessageError as e:
            logger.info("Rejected %s from %r: %s", msg_type, connection, e)
            await self.send_error(connection, str(e))

    def _check_identity(self, connection: Connection, claimed: int) -> None:
        bound = getattr(connection, "user_id", None)
        if bound is not None and bound != claimed:
            raise RelayMessageError("Identity mismatch: message subject does not match the authenticated user")

    async def _on_location_update(self, connection: Connection, msg_type: str, fields: dict[str, Any]) -> None:
        subject_id = _subject_id(fields, "id", "location data")
        latitude = _coordinate(fields, "latitude", 90, "location data")
        longitude = _coordinate(fields, "longitude", 180, "location data")
        accuracy = _optional_number(fields, "accuracy", "location data")
        role = fields.get("role")
        if role is not None and not isinstance(role, str):
            raise RelayMessageError("Invalid location data: 'role' must be a string")
        self._check_identity(connection, subject_id)

        try:
            await self.storage.create_location_update({
                "subject_id": subject_id,
                "latitude": latitude,
                "longitude": longitude,
                "accuracy": accuracy,
                "timestamp": datetime.utcnow(),
                "source": role or "user",
            })
        except Exception:
            logger.exception("Failed to store location update for subject %s", subject_id)
            await self.send_error(connection, "Failed to store location update")
            return

        await self.publish(
            {
                "type": LOCATION_UPDATE,
                "data": {
                    "id": subject_id,
                    "latitude": latitude,
                    "longitude": longitude,
                    "accuracy": accuracy,
                    "role": role,
                    "timestamp": _now_ms(),
                },
            },
            exclude=connection,
        )

    async def _on_emergency(self, connection: Connection, msg_type: str, fields: dict[str, Any]) -> None:
        user_id = _subject_id(fields, "userId", "emergency data")
        location = fields.get("location")
        if not isinstance(location, dict):
            raise RelayMessageError("Invalid emergency data: 'location' is required")
        latitude = _coordinate(location, "latitude", 90, "emergency data")
        longitude = _coordinate(location, "longitude", 180, "emergency data")
        accuracy = _optional_number(location, "accuracy", "emergency data")

        emergency_type = fields.get("emergencyType") or fields.get("emergency_type") or "medical"
        if not isinstance(emergency_type, str):
            raise RelayMessageError("Invalid emergency data: 'emergencyType' must be a string")
        description = fields.get("description") or ""
        if not isinstance(description, str):
            raise RelayMessageError("Invalid emergency data: 'description' must be a string")
        priority = fields.get("severity") or EmergencyPriority.MEDIUM.value
        if not isinstance(priority, str) or priority not in _PRIORITIES:
            raise RelayMessageError(f"Invalid emergency data: 'severity' must be one of {sorted(_PRIORITIES)}")
        self._check_identity(connection, user_id)

        origin = AlertOrigin.REALTIME if msg_type == EMERGENCY_BROADCAST else AlertOrigin.LEGACY_REALTIME
        try:
            emergency = await self.storage.create_emergency_alert({
                "user_id": user_id,
                "latitude": latitude,
                "longitude": longitude,
                "accuracy": accuracy,
                "emergency_type": emergency_type,
                "description": description,
                "priority": priority,
                "origin": origin,
            })
        except Exception:
            logger.exception("Failed to create emergency alert for user %s", user_id)
            await self.send_error(connection, "Failed to create emergency alert")
            return

        # Everyone, the sender included, sees the persisted record
        await self.publish({"type": EMERGENCY_BROADCAST, "data": emergency})

    async def _on_ping(self, connection: Connection, msg_type: str, fields: dict[str, Any]) -> None:
        await self._send(connection, {"type": "pong"})

    async def _on_pong(self, connection: Connection, msg_type: str, fields: dict[str, Any]) -> None:
        pass

    # --- Outbound ---

    async def publish(self, event: dict[str, Any], exclude: Optional[Connection] = None) -> int:
        """Send *event* to every open connection except *exclude*.

        Returns the number of connections the event reached.
        """
        delivered = 0
        for connection in self.registry.connections():
            if connection is exclude:
                continue
            if await self._send(connection, event):
                delivered += 1
            else:
                self.registry.unregister(connection)
        return delivered

    async def send_error(self, connection: Connection, message: str) -> None:
        await self._send(connection, {"type": ERROR, "message": message})

    async def _send(self, connection: Connection, event: dict[str, Any]) -> bool:
        try:
            await connection.send_json(event)
            return True
        except Exception as e:
            logger.warning("Failed to deliver %s to %r: %s", event.get("type"), connection, e)
            return False
