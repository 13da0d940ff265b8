"""Notification relay: pushes broadcast requests to connected WebSocket clients.

Clients connect to ``/ws`` with a session token. The payroll API (or any
internal service) posts to ``/broadcast-notification`` and the relay fans the
notification out by role.
"""

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ems_payroll.auth import AuthenticationError, bearer_token, decode_session_token
from ems_payroll.config import Settings, get_settings
from ems_payroll.relay.hub import Connection, ConnectionHub

logger = logging.getLogger(__name__)

ADMIN_TYPE_PREFIX = "admin_"
ANONYMOUS_TOKEN = "anonymous"


class BroadcastRequest(BaseModel):
    """Body posted by the payroll API's relay client.

    ``token`` is the session token of the user who triggered the broadcast,
    or ``"anonymous"`` for service-originated notifications.
    """

    event: str | None = None
    data: dict[str, Any] | None = None
    token: str | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def client_notification(event: str | None, data: dict[str, Any]) -> dict[str, Any]:
    """Shape a broadcast payload into the notification clients receive."""
    notification_type = str(data.get("type") or event or "notification")
    return {
        "id": data.get("id"),
        "type": notification_type,
        "message": data.get("message"),
        "actionUrl": data.get("actionUrl"),
        "actionLabel": data.get("actionLabel"),
        "createdAt": data.get("createdAt") or _now(),
        "read": False,
        "userId": data.get("userId"),
        "employeeId": data.get("employeeId"),
        "isAdminMessage": notification_type.startswith(ADMIN_TYPE_PREFIX),
    }


def create_relay_app(
    settings: Settings | None = None,
    hub: ConnectionHub | None = None,
) -> FastAPI:
    """Create the relay application."""
    settings = settings or get_settings()
    hub = hub or ConnectionHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Relay started")
        yield
        await hub.close_all()

    app = FastAPI(title="EMS Notification Relay", version="0.1.0", lifespan=lifespan)
    app.state.hub = hub
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def authorize_broadcast(provided_key: str | None, token: str | None) -> None:
        """Check the caller of a broadcast endpoint.

        With an internal key configured the key is required, and a forwarded
        session token is verified unless it is anonymous. Without one, a valid
        session token is required.
        """
        if settings.internal_api_key:
            if provided_key != settings.internal_api_key:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid internal API key",
                )
            if not token or token == ANONYMOUS_TOKEN:
                return
        try:
            decode_session_token(token, settings.jwt_secret)
        except AuthenticationError as e:
            logger.warning("Rejected broadcast: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(e),
            )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "time": _now(),
            "connections": len(hub),
            "admins": hub.admin_count,
            "employees": hub.employee_count,
        }

    @app.post("/broadcast-notification")
    async def broadcast_notification(
        payload: BroadcastRequest,
        x_internal_api_key: Annotated[str | None, Header()] = None,
    ) -> dict[str, Any]:
        """Deliver a notification to admin and/or employee sockets.

        Admin sockets receive it unless ``broadcastTo.admin`` is false, and
        only for ``admin_*`` types. Employee sockets receive it only when
        ``broadcastTo.employee`` is true.
        """
        authorize_broadcast(x_internal_api_key, payload.token)
        if not payload.data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing data field",
            )

        targets = _broadcast_flags(payload.data)
        to_admin = targets.get("admin") is not False
        to_employee = targets.get("employee") is True
        notification = client_notification(payload.event, payload.data)
        message = {"event": "notification", "data": notification}

        sent = 0
        if to_admin and notification["isAdminMessage"]:
            sent += await hub.broadcast(message, admin=True)
        if to_employee:
            sent += await hub.broadcast(message, employee=True)

        logger.info(
            "Broadcast %s: admin=%s employee=%s sent=%d",
            notification["type"],
            to_admin,
            to_employee,
            sent,
        )
        return {"status": "ok", "notificationsSent": sent}

    @app.post("/broadcast-location")
    async def broadcast_location(
        payload: dict[str, Any],
        x_internal_api_key: Annotated[str | None, Header()] = None,
        authorization: Annotated[str | None, Header()] = None,
    ) -> dict[str, Any]:
        """Forward a location update to every connected socket."""
        authorize_broadcast(x_internal_api_key, bearer_token(authorization))
        sent = await hub.broadcast_all({"event": "location-update", "data": payload})
        return {"status": "ok", "notificationsSent": sent}

    @app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: str | None = None,
    ) -> None:
        token = token or bearer_token(websocket.headers.get("authorization"))
        try:
            user = decode_session_token(token, settings.jwt_secret)
        except AuthenticationError as e:
            logger.warning("Rejected WebSocket handshake: %s", e)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()
        connection = hub.register(websocket, user)
        try:
            while True:
                raw = await websocket.receive_text()
                await _handle_client_message(hub, connection, raw)
        except WebSocketDisconnect:
            pass
        finally:
            hub.unregister(connection.id)

    return app


async def _handle_client_message(hub: ConnectionHub, connection: Connection, raw: str) -> None:
    """Rebroadcast client-sent notifications according to their ``broadcastTo`` flags."""
    try:
        message = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring non-JSON message from %s", connection.id)
        return
    if not isinstance(message, dict) or message.get("event") != "notification":
        logger.debug("Ignoring message from %s: %r", connection.id, raw[:100])
        return

    data = message.get("data")
    if not isinstance(data, dict):
        return
    targets = _broadcast_flags(data)
    sent = await hub.broadcast(
        {"event": "notification", "data": data},
        admin=bool(targets.get("admin")),
        employee=bool(targets.get("employee")),
    )
    logger.info("Rebroadcast notification from %s to %d socket(s)", connection.id, sent)


def _broadcast_flags(data: dict[str, Any]) -> dict[str, Any]:
    targets = data.get("broadcastTo")
    return targets if isinstance(targets, dict) else {}
