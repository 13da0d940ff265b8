"""Entry point for running the notification relay with uvicorn."""

import uvicorn

from ems_payroll.config import configure_logging, get_settings


def main() -> None:
    """Run the relay."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "ems_payroll.relay.app:create_relay_app",
        factory=True,
        host=settings.relay_host,
        port=settings.relay_port,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
