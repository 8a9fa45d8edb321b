from __future__ import annotations

import argparse

import uvicorn

from app.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Users service (FastAPI + MongoDB + OpenTelemetry)")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    args = parser.parse_args()

    # log_config=None keeps uvicorn from replacing the handlers configure_logging installs.
    uvicorn.run("app.main:app", host=args.host, port=args.port, reload=args.reload, log_config=None)


if __name__ == "__main__":
    main()
