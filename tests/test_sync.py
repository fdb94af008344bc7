"""Tests for PIN-gated network sync."""

import time

import pytest
from werkzeug.exceptions import RequestEntityTooLarge

from lingua_progress import (
    PairingInfo,
    SyncClient,
    SyncServer,
    SyncSessionError,
    SyncState,
    ValidationError,
    build_full_backup,
)
from lingua_progress.sync import PIN_HEADER


def _wait_closed(server, timeout=5.0):
    deadline = time.monotonic() + timeout
    while server.active and time.monotonic() < deadline:
        time.sleep(0.01)
    return not server.active


def _states(server):
    return [event.state for event in server.events(timeout=0.2)]


@pytest.fixture
def server(store_with_data):
    srv = SyncServer(store_with_data[0], host="127.0.0.1", session_timeout=30)
    yield srv
    srv.stop()


@pytest.fixture
def session(server):
    info = server.start()
    return server, info, server.app.test_client(), {PIN_HEADER: info.pin}


class TestPairingInfo:
    def test_token_round_trip(self):
        info = PairingInfo("192.168.1.20", 52814, "4821")
        assert PairingInfo.from_token(info.token()) == info
        assert info.base_url == "http://192.168.1.20:52814"

    @pytest.mark.parametrize("token", ["", "nope", '{"ip": "1.2.3.4"}', "[1, 2]"])
    def test_invalid_token(self, token):
        with pytest.raises(ValidationError):
            PairingInfo.from_token(token)


class TestSession:
    def test_start_issues_pin(self, server):
        info = server.start()
        assert info.ip == "127.0.0.1"
        assert info.port > 0
        assert len(info.pin) == 4 and info.pin.isdigit()
        assert server.state is SyncState.LISTENING
        assert server.next_event(timeout=1).state is SyncState.LISTENING

    def test_only_one_active_session(self, server):
        server.start()
        with pytest.raises(SyncSessionError):
            server.start()

    def test_cancel_returns_to_idle(self, server):
        server.start()
        assert server.cancel() is True
        assert _states(server) == [SyncState.LISTENING, SyncState.CANCELLED]
        assert server.state is SyncState.IDLE
        assert not server.active
        assert server.cancel() is False

    def test_timeout_during_transfer(self, store):
        srv = SyncServer(store, host="127.0.0.1", session_timeout=0.3)
        try:
            srv.start()
            with srv._lock:
                srv._emit(SyncState.UPLOADING, "Transfer started")
            assert _wait_closed(srv)
            events = list(srv.events(timeout=0.2))
            assert [e.state for e in events] == [
                SyncState.LISTENING, SyncState.UPLOADING, SyncState.ERROR,
            ]
            assert "timed out while uploading" in events[-1].message
            assert srv.state is SyncState.IDLE

            srv._finish(SyncState.COMPLETED, "late transfer result")
            assert srv.next_event(timeout=0.1) is None
            assert srv.state is SyncState.IDLE
        finally:
            srv.stop()

    def test_session_can_restart_after_stop(self, server):
        server.start()
        server.stop()
        assert server.state is SyncState.IDLE
        second = server.start()
        assert second.port > 0
        assert server.active
        assert server.state is SyncState.LISTENING

    def test_session_times_out(self, store):
        srv = SyncServer(store, host="127.0.0.1", session_timeout=0.2)
        try:
            srv.start()
            assert srv.next_event(timeout=2).state is SyncState.LISTENING
            event = srv.next_event(timeout=5)
            assert event.state is SyncState.ERROR
            assert "timed out" in event.message
            assert _wait_closed(srv)
            assert srv.state is SyncState.IDLE
        finally:
            srv.stop()


class TestRoutes:
    def test_no_session_rejects(self, server):
        response = server.app.test_client().get("/sync/handshake")
        assert response.status_code == 401

    def test_wrong_pin(self, session):
        server, info, client, _ = session
        wrong = "0000" if info.pin != "0000" else "1111"
        response = client.get("/sync/handshake", headers={PIN_HEADER: wrong})
        assert response.status_code == 401
        assert response.get_json() == {"error": "Invalid PIN"}
        assert server.state is SyncState.LISTENING

    def test_handshake(self, session):
        server, _, client, headers = session
        response = client.get("/sync/handshake", headers=headers)
        assert response.status_code == 200
        assert response.get_json()["message"] == "lingua-progress"
        assert server.state is SyncState.LISTENING

    def test_download(self, session):
        server, _, client, headers = session
        response = client.get("/sync/download", headers=headers)
        assert response.status_code == 200
        doc = response.get_json()
        assert doc["version"] == 1
        assert {w["word"] for w in doc["words"]} == {"hola", "gato"}
        assert _states(server) == [
            SyncState.LISTENING, SyncState.DOWNLOADING, SyncState.COMPLETED,
        ]
        assert _wait_closed(server)

    def test_upload_merges(self, session, other_store):
        server, _, client, headers = session
        wl = other_store.create_word_list("Portuguese")
        other_store.add_word_with_familiarity(wl.id, "obrigado", "thanks", 3)

        response = client.post(
            "/sync/upload",
            json=build_full_backup(other_store).to_document(),
            headers=headers,
        )

        assert response.status_code == 200
        assert response.get_json()["wordsAdded"] == 1
        assert server.store.find_word_list("Portuguese") is not None
        assert server.store.has_familiarity("obrigado")
        assert _states(server)[-1] is SyncState.COMPLETED

    def test_bad_upload_does_not_mutate(self, session):
        server, _, client, headers = session
        before = server.store.list_words()
        response = client.post(
            "/sync/upload",
            data=b'{"version": 1, "wordLists": [{"id": 1, "name": "X"}',
            headers=headers,
            content_type="application/json",
        )
        assert response.status_code == 400
        assert server.store.list_words() == before
        assert server.store.find_word_list("X") is None
        assert _states(server) == [
            SyncState.LISTENING, SyncState.UPLOADING, SyncState.ERROR,
        ]
        assert _wait_closed(server)

    def test_non_ascii_pin(self, session):
        server, _, client, _ = session
        response = client.get("/sync/handshake", headers={PIN_HEADER: "\u00e9"})
        assert response.status_code == 401
        assert server.state is SyncState.LISTENING

    def test_unexpected_upload_error_closes_session(self, session, monkeypatch):
        server, _, client, headers = session

        def broken(store, payload, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("lingua_progress.sync.reconcile", broken)
        response = client.post("/sync/upload", json={"words": []}, headers=headers)

        assert response.status_code == 500
        events = list(server.events(timeout=0.2))
        assert [e.state for e in events] == [
            SyncState.LISTENING, SyncState.UPLOADING, SyncState.ERROR,
        ]
        assert "boom" in events[-1].message
        assert _wait_closed(server)
        assert server.state is SyncState.IDLE

    def test_oversized_upload_closes_session(self, session, monkeypatch):
        server, _, client, headers = session

        def too_large(data):
            raise RequestEntityTooLarge()

        monkeypatch.setattr("lingua_progress.sync.load_payload", too_large)
        response = client.post("/sync/upload", json={"words": []}, headers=headers)

        assert response.status_code == 413
        assert _states(server)[-1] is SyncState.ERROR
        assert _wait_closed(server)

    def test_concurrent_upload_rejected(self, session):
        server, _, client, headers = session
        server._transfer.acquire()
        try:
            response = client.post("/sync/upload", json={"words": []}, headers=headers)
        finally:
            server._transfer.release()
        assert response.status_code == 409
        assert server.state is SyncState.LISTENING


class TestClient:
    def test_pull_over_loopback(self, server, other_store):
        info = server.start()
        with SyncClient(info, timeout=5) as client:
            assert client.handshake()["version"]
            report = client.pull(other_store)
        assert report.lists_added == 1
        assert report.words_added == 2
        assert other_store.get_familiarity("gato").interval == 7
        assert _wait_closed(server)

    def test_push_over_loopback(self, store_with_data, other_store):
        srv = SyncServer(other_store, host="127.0.0.1", session_timeout=30)
        try:
            info = srv.start()
            with SyncClient(PairingInfo.from_token(info.token()), timeout=5) as client:
                counts = client.push(store_with_data[0])
            assert counts["listsAdded"] == 1
            assert counts["familiarityAdded"] == 2
            assert other_store.find_word_list("Spanish") is not None
        finally:
            srv.stop()

    def test_wrong_pin_raises(self, server):
        info = server.start()
        wrong = PairingInfo(info.ip, info.port, "0000" if info.pin != "0000" else "1111")
        with SyncClient(wrong, timeout=5) as client:
            with pytest.raises(SyncSessionError, match="401"):
                client.handshake()

    def test_unreachable_server(self):
        with SyncClient(PairingInfo("127.0.0.1", 9, "1234"), timeout=1) as client:
            with pytest.raises(SyncSessionError):
                client.handshake()
