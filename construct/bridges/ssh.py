# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""TCP to unix-socket bridge for the host SSH agent.

Docker Desktop style VMs cannot bind-mount the host's SSH_AUTH_SOCK, so
the container reaches the agent over host.docker.internal:<port> and
this bridge relays each connection to the local agent socket.
"""

import os
import socket
import threading
from typing import Optional

from construct.errors import BridgeError
from construct.utils.logging import get_logger

logger = get_logger(__name__)

BUFFER_SIZE = 32 * 1024


class SSHBridge:
    """Listens on 127.0.0.1:<random> and relays to SSH_AUTH_SOCK."""

    def __init__(self, agent_socket: Optional[str] = None, host: str = "127.0.0.1"):
        self.agent_socket = agent_socket if agent_socket is not None else os.environ.get("SSH_AUTH_SOCK", "")
        self.host = host
        self.port = 0
        self._listener: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def start(self) -> int:
        """Start listening and return the bound port.

        Raises:
            BridgeError: If SSH_AUTH_SOCK is unset or the port cannot be bound
        """
        if not self.agent_socket:
            raise BridgeError("SSH_AUTH_SOCK not set on host")
        try:
            self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._listener.bind((self.host, 0))
            self._listener.listen(16)
            self._listener.settimeout(1.0)
        except OSError as e:
            raise BridgeError(f"failed to start SSH bridge listener: {e}") from e

        self.port = self._listener.getsockname()[1]
        self._running = True
        self._thread = threading.Thread(target=self._accept_loop, daemon=True, name="ssh-bridge")
        self._thread.start()
        logger.debug(f"SSH bridge listening on {self.host}:{self.port}")
        return self.port

    def stop(self) -> None:
        self._running = False
        if self._listener:
            try:
                self._listener.close()
            except OSError as e:
                logger.debug(f"SSH bridge close failed: {e}")
            self._listener = None
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None

    def _accept_loop(self) -> None:
        while self._running and self._listener:
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._running:
                    logger.debug("SSH bridge accept error")
                break
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: socket.socket) -> None:
        conn.settimeout(None)
        agent = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            agent.connect(self.agent_socket)
        except OSError as e:
            logger.debug(f"SSH bridge: cannot reach agent at {self.agent_socket}: {e}")
            agent.close()
            conn.close()
            return

        done = threading.Event()
        pumps = [
            threading.Thread(target=self._pump, args=(conn, agent, done), daemon=True),
            threading.Thread(target=self._pump, args=(agent, conn, done), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        # Either direction finishing ends the connection
        done.wait()
        for sock in (conn, agent):
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

    @staticmethod
    def _pump(src: socket.socket, dst: socket.socket, done: threading.Event) -> None:
        try:
            while True:
                data = src.recv(BUFFER_SIZE)
                if not data:
                    break
                dst.sendall(data)
        except OSError:
            pass
        finally:
            done.set()
