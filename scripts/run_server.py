"""Script to launch the world chat server."""

from __future__ import annotations

import argparse
import os
import sys

import uvicorn

# Ensure src/ is on sys.path (so imports work when run directly)
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from worldchat.config import configure_logging, load_config  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the world chat server.")
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST", "127.0.0.1"),
        help="Host to bind the server to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "5000")),
        help="Port to bind the server to (default: 5000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development (default: off)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config file (default: $WORLDCHAT_CONFIG or config/default.yaml)",
    )
    args = parser.parse_args()

    if args.config:
        # The reloader imports the app factory in a fresh process; pass the path on.
        os.environ["WORLDCHAT_CONFIG"] = args.config
    cfg = load_config(args.config)
    configure_logging(cfg)

    # Chat state lives in this process, so a single worker only.
    uvicorn.run(
        "worldchat.server:create_app",
        factory=True,
        app_dir=SRC_DIR,
        reload=args.reload,
        host=args.host,
        port=args.port,
        log_level=str(cfg.get("logging", {}).get("level", "info")).lower(),
    )


if __name__ == "__main__":
    main()
