"""World chat: an ephemeral, in-memory group chat room served over WebSockets.

The package provides a FastAPI application factory named ``create_app``
inside ``worldchat/server.py`` (see :func:`create_app`).

Typical usage
-------------
from worldchat import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

from .room import ChatRoom
from .server import create_app

__all__ = ["ChatRoom", "create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__
