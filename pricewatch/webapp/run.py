"""Run the webapp server."""

import argparse
import logging

from .. import config


def main():
    """Run the webapp with uvicorn."""
    parser = argparse.ArgumentParser(description="Run the Pricewatch API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args()

    serve(args.host, args.port, args.reload)


def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    import uvicorn

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    uvicorn.run(
        "pricewatch.webapp.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
