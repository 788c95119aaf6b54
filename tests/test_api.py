"""
Tests for the HTTP and WebSocket routes
"""
import io
from pathlib import Path

from proctor_service.config import settings


def _start(client, session_id="s1", name="Alice"):
    resp = client.post("/api/sessions", json={"session_id": session_id, "candidate_name": name})
    assert resp.status_code == 201
    return resp.json()


def _event(client, session_id, kind="focus-loss", severity="danger", **extra):
    body = {"kind": kind, "severity": severity, "message": f"{kind} detected", **extra}
    return client.post(f"/api/sessions/{session_id}/events", json=body)


class TestSessionRoutes:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_create_generates_id(self, client):
        resp = client.post("/api/sessions", json={"candidate_name": "Alice"})

        assert resp.status_code == 201
        data = resp.json()
        assert data["session_id"]
        assert data["status"] == "in-progress"
        assert data["focus_loss_count"] == 0

    def test_duplicate_session_conflict(self, client):
        _start(client)

        resp = client.post("/api/sessions", json={"session_id": "s1", "candidate_name": "Bob"})

        assert resp.status_code == 409
        assert resp.json()["error"] == "duplicate_session"

    def test_list_and_get(self, client):
        _start(client, "a")
        _start(client, "b")

        listed = client.get("/api/sessions").json()
        assert [s["session_id"] for s in listed][:2] == ["b", "a"]
        assert "events" not in listed[0]

        assert client.get("/api/sessions/a").json()["candidate_name"] == "Alice"
        assert client.get("/api/sessions/zzz").status_code == 404

    def test_event_errors(self, client):
        _start(client)

        bad = _event(client, "s1", kind="looking-away")
        assert bad.status_code == 422
        assert bad.json()["error"] == "invalid_event"

        missing = _event(client, "ghost")
        assert missing.status_code == 404
        assert missing.json()["error"] == "session_not_found"

    def test_out_of_range_timestamp_is_invalid_event(self, client):
        _start(client)

        resp = _event(client, "s1", occurred_at=1e20)

        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_event"
        assert client.get("/api/sessions/s1").json()["events"] == []

    def test_duplicate_event_acknowledged(self, client):
        _start(client)

        first = _event(client, "s1", event_id="e1")
        second = _event(client, "s1", event_id="e1")

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["duplicate"] is True
        assert second.json()["total_events"] == 1

    def test_end_and_double_end(self, client):
        _start(client)
        _event(client, "s1")

        ended = client.post("/api/sessions/s1/end")
        assert ended.status_code == 200
        assert ended.json()["status"] == "completed"
        assert ended.json()["integrity_score"] == 95

        again = client.post("/api/sessions/s1/end")
        assert again.status_code == 409
        assert again.json()["error"] == "invalid_transition"
        assert client.get("/api/sessions/s1").json() == ended.json()

    def test_end_with_client_tally(self, client):
        _start(client)
        _event(client, "s1")

        resp = client.post("/api/sessions/s1/end", json={"focus_loss_count": 0, "integrity_score": 100})

        assert resp.json()["focus_loss_count"] == 1
        assert resp.json()["integrity_score"] == 95
        assert resp.json()["reported_tally_mismatch"] is True

    def test_late_event_rejected(self, client):
        _start(client)
        client.post("/api/sessions/s1/end")

        resp = _event(client, "s1")

        assert resp.status_code == 409
        assert resp.json()["error"] == "session_closed"

    def test_cancel(self, client):
        _start(client)

        resp = client.post("/api/sessions/s1/cancel")

        assert resp.json()["status"] == "cancelled"
        assert resp.json()["integrity_score"] is None
        assert client.post("/api/sessions/s1/cancel").status_code == 409


class TestReportRoutes:

    def test_alice_scenario(self, client):
        _start(client, "s1", "Alice")
        _event(client, "s1", "focus-loss", "danger")
        _event(client, "s1", "focus-loss", "danger")
        _event(client, "s1", "object-detection", "danger", detail={"object_type": "cell phone"})
        client.post("/api/sessions/s1/end")

        report = client.get("/api/reports/s1").json()

        assert report["focus_loss_count"] == 2
        assert report["object_events"] == 1
        assert report["focus_events"] == 2
        assert report["total_events"] == 3
        assert report["integrity_score"] == 80
        assert report["provisional"] is False
        assert len(report["events"]) == 3

    def test_live_report(self, client):
        _start(client)
        _event(client, "s1", "multiple-faces", "danger")

        plain = client.get("/api/reports/s1").json()
        live = client.get("/api/reports/s1", params={"live": True}).json()

        assert plain["integrity_score"] is None
        assert live["integrity_score"] == 90
        assert live["provisional"] is True
        # live reports never freeze the score
        assert client.get("/api/sessions/s1").json()["integrity_score"] is None

    def test_csv_export(self, client):
        _start(client)
        _event(client, "s1", "face-absence", "warning")
        client.post("/api/sessions/s1/end")

        resp = client.get("/api/reports/s1", params={"format": "csv"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.text.strip().splitlines()
        assert lines[0] == "Time,Event Type,Severity,Details"
        assert "face-absence" in lines[1]

    def test_pdf_export(self, client):
        _start(client)
        client.post("/api/sessions/s1/end")

        resp = client.get("/api/reports/s1", params={"format": "pdf"})

        assert resp.status_code == 200
        assert resp.content.startswith(b"%PDF")

    def test_bad_format_and_missing(self, client):
        _start(client)
        assert client.get("/api/reports/s1", params={"format": "xml"}).status_code == 400
        assert client.get("/api/reports/ghost").status_code == 404

    def test_stats_summary(self, client):
        _start(client, "a")
        _event(client, "a", "object-detection", "danger")
        client.post("/api/sessions/a/end")
        _start(client, "b")
        client.post("/api/sessions/b/end")
        _start(client, "c")
        _event(client, "ghost")

        stats = client.get("/api/stats/summary").json()

        assert stats["total_sessions"] == 3
        assert stats["completed_sessions"] == 2
        assert stats["average_integrity_score"] == 95.0
        assert {s["session_id"] for s in stats["recent_sessions"]} == {"a", "b"}
        assert stats["rejected_events"] == {"session_not_found": 1}


class TestRecordingUpload:

    def test_upload_attaches_recording(self, client):
        _start(client)

        resp = client.post(
            "/api/sessions/s1/recording",
            files={"file": ("interview.webm", io.BytesIO(b"\x1a\x45\xdf\xa3" * 100), "video/webm")},
        )

        assert resp.status_code == 200
        recording = resp.json()["recording"]
        assert recording["size_bytes"] == 400
        assert Path(recording["path"]).parent == Path(settings.RECORDING_STORAGE_PATH)
        assert Path(recording["path"]).name.startswith("s1-")

    def test_upload_unknown_session(self, client):
        resp = client.post(
            "/api/sessions/ghost/recording",
            files={"file": ("x.webm", io.BytesIO(b"data"), "video/webm")},
        )
        assert resp.status_code == 404


class TestStreamWebSocket:

    def test_stream_lifecycle(self, client):
        with client.websocket_connect("/ws/stream") as ws:
            ws.send_json({"type": "interview-start", "session_id": "w1", "candidate_name": "Alice"})
            assert ws.receive_json()["ok"] is True

            ws.send_json({"type": "focus-event", "session_id": "w1", "kind": "focus-loss",
                          "severity": "warning", "message": "looked away"})
            ack = ws.receive_json()
            assert ack["ok"] is True
            assert ack["focus_loss_count"] == 1

            ws.send_json({"type": "interview-end", "session_id": "w1", "focus_loss_count": 1})
            end = ws.receive_json()
            assert end["status"] == "completed"
            assert end["integrity_score"] == 98

    def test_errors_keep_connection_open(self, client):
        with client.websocket_connect("/ws/stream") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["error"] == "invalid_json"

            ws.send_json({"type": "detection-event", "session_id": "ghost", "kind": "focus-loss",
                          "severity": "warning", "message": "x"})
            assert ws.receive_json()["error"] == "session_not_found"

            ws.send_json({"type": "teleport"})
            assert ws.receive_json()["error"] == "invalid_message"

            ws.send_json({"type": "interview-start", "session_id": "w2", "candidate_name": "Bob"})
            assert ws.receive_json()["ok"] is True

    def test_out_of_range_timestamp_keeps_connection_open(self, client):
        _start(client, "w3")
        with client.websocket_connect("/ws/stream") as ws:
            ws.send_json({"type": "detection-event", "session_id": "w3", "kind": "focus-loss",
                          "severity": "warning", "message": "x", "occurred_at": 1e20})
            reply = ws.receive_json()
            assert reply["ok"] is False
            assert reply["error"] == "invalid_event"

            # JSON Infinity is accepted by json.loads
            ws.send_text('{"type": "detection-event", "session_id": "w3", "kind": "focus-loss", '
                         '"severity": "warning", "message": "x", "occurred_at": Infinity}')
            assert ws.receive_json()["error"] == "invalid_event"

            ws.send_json({"type": "detection-event", "session_id": "w3", "kind": "focus-loss",
                          "severity": "warning", "message": "x"})
            assert ws.receive_json()["ok"] is True

    def test_malformed_start_keeps_connection_open(self, client):
        with client.websocket_connect("/ws/stream") as ws:
            ws.send_json({"type": "interview-start", "session_id": "w4", "candidate_name": 42})
            reply = ws.receive_json()
            assert reply["ok"] is False
            assert reply["error"] == "invalid_message"

            ws.send_json({"type": "interview-start", "session_id": 7, "candidate_name": "Dana"})
            assert ws.receive_json()["error"] == "invalid_message"

            ws.send_json({"type": "interview-start", "candidate_name": "Dana"})
            assert ws.receive_json()["error"] == "invalid_message"

            ws.send_json({"type": "interview-start", "session_id": "w4", "candidate_name": "Dana"})
            assert ws.receive_json()["ok"] is True

        assert client.get("/api/sessions/w4").json()["candidate_name"] == "Dana"

    def test_monitor_receives_alerts(self, client):
        _start(client)
        with client.websocket_connect("/ws/monitor?session_id=s1") as monitor:
            _event(client, "s1", "object-detection", "danger", detail={"object_type": "book"})
            alert = monitor.receive_json()

        assert alert["type"] == "object-alert"
        assert alert["session_id"] == "s1"
        assert alert["event"]["detail"]["object_type"] == "book"
