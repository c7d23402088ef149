# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Host clipboard bridge.

A token-protected HTTP endpoint on the host that agents inside the
container call to read the host clipboard:

    GET /paste?type=text/plain   -> text/plain
    GET /paste?type=image/png    -> image/png (404 when no image)

Header X-Construct-Clip-Token must carry the per-session token.
"""

import binascii
import os
import secrets
import shutil
import socket
import subprocess
import sys
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, Query
from fastapi.responses import PlainTextResponse, Response

from construct.errors import BridgeError
from construct.utils.logging import get_logger
from construct.utils.polling import poll_until

logger = get_logger(__name__)

TOKEN_HEADER = "X-Construct-Clip-Token"
READ_TIMEOUT = 5


class NoImageError(Exception):
    """The clipboard holds no image."""


class ClipboardReader:
    """Reads the host clipboard through the platform's command-line tools."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    def _output(self, cmd) -> Optional[bytes]:
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=READ_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout

    def get_text(self) -> bytes:
        """Clipboard text (empty when nothing is available)."""
        if self.platform == "darwin":
            return self._output(["pbpaste"]) or b""
        if os.environ.get("WAYLAND_DISPLAY"):
            data = self._output(["wl-paste", "--no-newline"])
            if data is not None:
                return data
        return self._output(["xclip", "-selection", "clipboard", "-o"]) or b""

    def get_image(self) -> bytes:
        """Clipboard image as PNG.

        Raises:
            NoImageError: If the clipboard holds no image
        """
        if self.platform == "darwin":
            return self._mac_image()
        if os.environ.get("WAYLAND_DISPLAY"):
            data = self._output(["wl-paste", "-t", "image/png"])
            if data:
                return data
        if not shutil.which("xclip"):
            raise NoImageError("xclip or wl-paste not found on host")
        data = self._output(["xclip", "-selection", "clipboard", "-t", "image/png", "-o"])
        if not data:
            raise NoImageError("no image in clipboard")
        return data

    def _mac_image(self) -> bytes:
        if shutil.which("pngpaste"):
            data = self._output(["pngpaste", "-"])
            if data:
                return data
        # osascript prints «data PNGf89504E47...»
        raw = self._output(["osascript", "-e", "get the clipboard as «class PNGf»"])
        if not raw:
            raise NoImageError("no image in clipboard")
        text = raw.decode("utf-8", errors="replace").strip()
        marker = "«data PNGf"
        start = text.find(marker)
        if start == -1:
            raise NoImageError("no image in clipboard")
        end = text.rfind("»")
        hex_data = text[start + len(marker) : end if end > start else len(text)]
        try:
            return binascii.unhexlify(hex_data)
        except (binascii.Error, ValueError) as e:
            raise NoImageError(f"failed to decode clipboard data: {e}") from e


def create_app(token: str, reader: Optional[ClipboardReader] = None) -> FastAPI:
    """FastAPI app serving /paste for one session token."""
    reader = reader or ClipboardReader()
    app = FastAPI(title="construct clipboard bridge", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/paste")
    def paste(
        content_type: str = Query("", alias="type"),
        clip_token: Optional[str] = Header(None, alias=TOKEN_HEADER),
    ):
        if not clip_token or not secrets.compare_digest(clip_token, token):
            logger.debug("Clipboard request rejected (invalid token)")
            return PlainTextResponse("Unauthorized", status_code=401)

        if content_type in ("", "text/plain"):
            data = reader.get_text()
            logger.debug(f"Clipboard: serving {len(data)} bytes of text")
            return Response(content=data, media_type="text/plain")

        try:
            data = reader.get_image()
        except NoImageError as e:
            logger.debug(f"Clipboard: {e}")
            return PlainTextResponse("No image in clipboard", status_code=404)
        logger.debug(f"Clipboard: serving {len(data)} bytes of image data")
        return Response(content=data, media_type="image/png")

    return app


class ClipboardBridge:
    """uvicorn server for the clipboard app, run in a background thread."""

    def __init__(self, host: str = "host.docker.internal", reader: Optional[ClipboardReader] = None):
        self.host = host
        self.reader = reader
        self.token = ""
        self.port = 0
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        """Address as seen from inside the container."""
        return f"http://{self.host}:{self.port}"

    def start(self) -> "ClipboardBridge":
        """Bind a random port on all interfaces and start serving.

        Raises:
            BridgeError: If the listener cannot be bound or the server does not come up
        """
        self.token = secrets.token_hex(32)
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("0.0.0.0", 0))
        except OSError as e:
            raise BridgeError(f"failed to start clipboard listener: {e}") from e
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            create_app(self.token, self.reader),
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            daemon=True,
            name="clipboard-bridge",
        )
        self._thread.start()

        if not poll_until(lambda: self._server.started, 0.05, 3.0):
            self.stop()
            raise BridgeError("clipboard server did not start")
        logger.debug(f"Clipboard bridge listening on port {self.port}")
        return self

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=3.0)
        self._server = None
        self._thread = None
