"""Network sync between two devices on the same network.

A :class:`SyncServer` opens a short-lived, PIN-gated pairing session and
serves three routes, all of which require the ``X-Auth-Pin`` header:

``GET /sync/handshake``
    Identifies the server.
``GET /sync/download``
    Returns a full backup of the local store.
``POST /sync/upload``
    Reconciles an uploaded interchange document into the local store and
    returns the import counts.

A session carries one transfer. It moves ``idle -> listening ->
uploading|downloading -> completed|error -> idle``; every transition is
pushed to a single ordered event queue. :class:`SyncClient` is the other
side of the pairing.
"""

from __future__ import annotations

import hmac
import json
import logging
import queue
import secrets
import socket
import string
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import httpx
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.serving import BaseWSGIServer, make_server

from lingua_progress.exceptions import (
    LinguaProgressError,
    SyncSessionError,
    ValidationError,
)
from lingua_progress.exporter import build_full_backup
from lingua_progress.interchange import ImportPayload, load_payload
from lingua_progress.models import ImportReport, SyncState
from lingua_progress.reconciler import reconcile
from lingua_progress.store import VocabularyStore

logger = logging.getLogger(__name__)

PIN_HEADER = "X-Auth-Pin"
PROTOCOL_VERSION = "1.0.0"
SERVER_NAME = "lingua-progress"
MAX_UPLOAD_BYTES = 50 * 1024 * 1024

_OPEN_STATES = (SyncState.LISTENING, SyncState.DOWNLOADING, SyncState.UPLOADING)


@dataclass(frozen=True, slots=True)
class PairingInfo:
    """Where and how a second device reaches a listening server."""

    ip: str
    port: int
    pin: str

    def token(self) -> str:
        """Compact text token, suitable for a QR code."""
        return json.dumps(
            {"ip": self.ip, "port": self.port, "pin": self.pin},
            separators=(",", ":"),
        )

    @classmethod
    def from_token(cls, token: str) -> PairingInfo:
        try:
            data = json.loads(token)
            return cls(ip=str(data["ip"]), port=int(data["port"]), pin=str(data["pin"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid pairing token: {token!r}") from e

    @property
    def base_url(self) -> str:
        return f"http://{self.ip}:{self.port}"


@dataclass(frozen=True, slots=True)
class SyncEvent:
    state: SyncState
    message: str


def local_ip() -> str:
    """Best guess at this machine's LAN address."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connecting only selects the outgoing interface.
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()


def generate_pin(length: int = 4) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


class SyncServer:
    """Serves one pairing session at a time on a background thread."""

    def __init__(
        self,
        store: VocabularyStore,
        *,
        host: str = "0.0.0.0",
        port: int = 0,
        pin_length: int = 4,
        session_timeout: float = 300.0,
    ) -> None:
        self.store = store
        self.host = host
        self.port = port
        self.pin_length = pin_length
        self.session_timeout = session_timeout
        self.app = self._create_app()

        self._lock = threading.RLock()
        self._transfer = threading.Lock()
        self._events: queue.Queue[SyncEvent] = queue.Queue()
        self._state = SyncState.IDLE
        self._pin: str | None = None
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None
        self._timer: threading.Timer | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def active(self) -> bool:
        return self._server is not None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self) -> PairingInfo:
        """Open a listening socket and issue a PIN.

        Raises:
            SyncSessionError: If a session is already active or the socket
                cannot be opened.
        """
        with self._lock:
            if self._server is not None:
                raise SyncSessionError("A sync session is already active")
            try:
                server = make_server(self.host, self.port, self.app, threaded=True)
            except OSError as e:
                raise SyncSessionError(
                    f"Cannot listen on {self.host}:{self.port}: {e}"
                ) from e
            self._server = server
            self._pin = generate_pin(self.pin_length)
            self._thread = threading.Thread(
                target=server.serve_forever,
                name="lingua-sync-server",
                daemon=True,
            )
            self._thread.start()
            if self.session_timeout > 0:
                self._timer = threading.Timer(
                    self.session_timeout, self._expire, args=(server,)
                )
                self._timer.daemon = True
                self._timer.start()
            ip = self.host if self.host not in ("0.0.0.0", "") else local_ip()
            info = PairingInfo(ip=ip, port=server.server_port, pin=self._pin)
            self._emit(SyncState.LISTENING, f"Listening on {ip}:{info.port}")
        return info

    def stop(self) -> None:
        """Close the session, if any, without emitting an event."""
        self._close_session(self._server)

    def cancel(self) -> bool:
        """Cancel the active session; False if there was none."""
        with self._lock:
            server = self._server
            if server is None:
                return False
            self._emit(SyncState.CANCELLED, "Sync cancelled")
        self._close_session(server)
        return True

    def _expire(self, server: BaseWSGIServer) -> None:
        with self._lock:
            if self._server is not server or self._state not in _OPEN_STATES:
                return
            self._emit(
                SyncState.ERROR, f"Sync session timed out while {self._state.value}"
            )
        self._close_session(server)

    def _finish(self, state: SyncState, message: str) -> None:
        """Emit the final event and close the session after the response."""
        with self._lock:
            server = self._server
            if server is None:
                # Already closed by a timeout or cancel.
                logger.info("Sync %s after session closed: %s", state.value, message)
                return
            self._emit(state, message)
        threading.Thread(
            target=self._close_session,
            args=(server,),
            name="lingua-sync-close",
            daemon=True,
        ).start()

    def _close_session(self, server: BaseWSGIServer | None) -> None:
        with self._lock:
            if server is None or self._server is not server:
                return
            thread, timer = self._thread, self._timer
            self._server = self._thread = self._timer = None
            self._pin = None
            self._state = SyncState.IDLE
        if timer is not None:
            timer.cancel()
        server.shutdown()
        server.server_close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        logger.info("Sync session closed")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, state: SyncState, message: str) -> None:
        self._state = state
        logger.info("Sync %s: %s", state.value, message)
        self._events.put(SyncEvent(state, message))

    def next_event(self, timeout: float | None = None) -> SyncEvent | None:
        """Next event in emission order, or None after *timeout* seconds."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def events(self, timeout: float | None = None) -> Iterator[SyncEvent]:
        """Iterate over events until none arrives within *timeout*."""
        while True:
            event = self.next_event(timeout)
            if event is None:
                return
            yield event

    # ------------------------------------------------------------------
    # HTTP routes
    # ------------------------------------------------------------------

    def _create_app(self) -> Flask:
        app = Flask(__name__)
        app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES

        @app.before_request
        def check_pin() -> Any:
            supplied = request.headers.get(PIN_HEADER, "")
            pin = self._pin
            if pin is None or not hmac.compare_digest(
                supplied.encode("utf-8"), pin.encode("utf-8")
            ):
                logger.warning(
                    "Rejected %s %s from %s: invalid PIN",
                    request.method, request.path, request.remote_addr,
                )
                return jsonify(error="Invalid PIN"), 401
            return None

        @app.get("/sync/handshake")
        def handshake() -> Any:
            logger.info("Handshake from %s", request.remote_addr)
            return jsonify(message=SERVER_NAME, version=PROTOCOL_VERSION)

        @app.get("/sync/download")
        def download() -> Any:
            return self._transfer_guarded(SyncState.DOWNLOADING, self._handle_download)

        @app.post("/sync/upload")
        def upload() -> Any:
            return self._transfer_guarded(SyncState.UPLOADING, self._handle_upload)

        return app

    def _transfer_guarded(self, state: SyncState, handler: Any) -> Any:
        if not self._transfer.acquire(blocking=False):
            return jsonify(error="Another transfer is in progress"), 409
        try:
            with self._lock:
                if self._state != SyncState.LISTENING:
                    return jsonify(error="Session is not accepting transfers"), 409
                self._emit(state, "Transfer started")
            try:
                return handler()
            except HTTPException as e:
                self._finish(SyncState.ERROR, f"Transfer rejected: {e.description}")
                return jsonify(error=e.description), e.code
            except Exception as e:
                logger.exception("Sync transfer failed")
                self._finish(SyncState.ERROR, f"Transfer failed: {e}")
                return jsonify(error="Internal error during transfer"), 500
        finally:
            self._transfer.release()

    def _handle_download(self) -> Any:
        try:
            document = build_full_backup(self.store).to_document()
        except LinguaProgressError as e:
            self._finish(SyncState.ERROR, f"Download failed: {e}")
            return jsonify(error=str(e)), 500
        self._finish(
            SyncState.COMPLETED,
            f"Sent {len(document['words'])} words to device",
        )
        return jsonify(document)

    def _handle_upload(self) -> Any:
        try:
            payload = load_payload(request.get_data())
        except ValidationError as e:
            self._finish(SyncState.ERROR, f"Upload rejected: {e}")
            return jsonify(error=str(e)), 400
        try:
            report = reconcile(self.store, payload)
        except LinguaProgressError as e:
            self._finish(SyncState.ERROR, f"Upload failed: {e}")
            return jsonify(error=str(e)), 500
        self._finish(
            SyncState.COMPLETED,
            f"Merged {report.lists_added} lists and {report.words_added} words",
        )
        return jsonify(report.as_dict())


class SyncClient:
    """Talks to a paired :class:`SyncServer`."""

    def __init__(
        self,
        pairing: PairingInfo,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.pairing = pairing
        self._client = httpx.Client(
            base_url=pairing.base_url,
            headers={PIN_HEADER: pairing.pin, "accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SyncClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("error", e.response.text)
            except ValueError:
                detail = e.response.text
            raise SyncSessionError(
                f"{method} {path} failed ({e.response.status_code}): {detail}"
            ) from e
        except httpx.HTTPError as e:
            raise SyncSessionError(f"{method} {path} failed: {e}") from e
        return response

    def handshake(self) -> dict[str, Any]:
        return self._request("GET", "/sync/handshake").json()

    def download(self) -> ImportPayload:
        """Fetch the server's full backup, validated but not yet merged."""
        return load_payload(self._request("GET", "/sync/download").content)

    def pull(self, store: VocabularyStore) -> ImportReport:
        """Download the server's data and reconcile it into *store*."""
        return reconcile(store, self.download())

    def push(self, store: VocabularyStore) -> dict[str, Any]:
        """Upload a full backup of *store*; returns the server's counts."""
        document = build_full_backup(store).to_document()
        return self._request("POST", "/sync/upload", json=document).json()
