"""TCP listener for the ASGI application

The socket is bound here rather than by uvicorn so that a bind failure
surfaces as a :class:`ListenError` instead of uvicorn exiting the process.
"""

import socket
from enum import Enum
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI

from src.utils.config_loader import Settings, get_settings

logger = structlog.get_logger(__name__)

SERVER_HOST = "127.0.0.1"
SERVER_PORT = 3000


class ServerState(str, Enum):
    """Listener lifecycle"""
    STARTING = "starting"
    LISTENING = "listening"
    FAILED = "failed"


class ListenError(Exception):
    """Raised when the listening socket cannot be opened"""

    def __init__(self, host: str, port: int, cause: OSError):
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"Unable to listen on {format_address(host, port)}: {cause}")


def format_address(host: str, port: int) -> str:
    """Format a bound address as an http URL"""
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


class Listener:
    """Binds the listening socket once and serves the app on it"""

    def __init__(
        self,
        app: FastAPI,
        host: str = SERVER_HOST,
        port: int = SERVER_PORT,
        settings: Optional[Settings] = None,
        backlog: int = 2048,
    ):
        self.app = app
        self.host = host
        self.port = port
        self.backlog = backlog
        self.settings = settings or get_settings()
        self.state = ServerState.STARTING
        self.address: Optional[str] = None
        self._socket: Optional[socket.socket] = None

    def listen(self) -> str:
        """Open the listening socket

        Returns:
            The bound address, e.g. ``http://127.0.0.1:3000``

        Raises:
            ListenError: If the address cannot be bound
        """
        if self.state is not ServerState.STARTING:
            raise RuntimeError(f"listen() called on a listener that is {self.state.value}")

        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError as exc:
            sock.close()
            self.state = ServerState.FAILED
            raise ListenError(self.host, self.port, exc) from exc

        bound_host, bound_port = sock.getsockname()[:2]
        self._socket = sock
        self.address = format_address(bound_host, bound_port)
        self.state = ServerState.LISTENING
        return self.address

    async def serve(self) -> None:
        """Serve the app on the bound socket until uvicorn shuts down"""
        if self._socket is None:
            raise RuntimeError("serve() requires a successful listen()")

        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=self.settings.log_level.lower(),
            access_log=False,
            lifespan="on",
        )
        server = uvicorn.Server(config)
        try:
            await server.serve(sockets=[self._socket])
        finally:
            self.close()

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None
