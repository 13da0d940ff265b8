"""WebSocket notification relay."""

from ems_payroll.relay.app import create_relay_app
from ems_payroll.relay.hub import Connection, ConnectionHub

__all__ = ["Connection", "ConnectionHub", "create_relay_app"]
