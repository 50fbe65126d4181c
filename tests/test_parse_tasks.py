"""
Test suite for the resume Parse queue endpoints.

Tests cover:
- Scheduled and immediate enqueueing
- Uploads
- Run-now, cancel and delete guards
"""

from datetime import datetime, timedelta

from app.core.time_utils import format_local, utcnow
from app.crud import task_ledger
from app.models.task import TaskKind, TaskStatus
from app.services.resume_parser import DOCX_CONTENT_TYPE

PDF = "application/pdf"


def file_ref(file_id="f1", content_type=PDF):
    return {"file_id": file_id, "object_name": f"resumes/{file_id}.pdf", "content_type": content_type, "original_name": f"{file_id}.pdf"}


class TestParseEnqueue:

    def test_scheduled_for_next_parse_window(self, client, supervisor):
        response = client.post("/api/v1/parse-tasks", json={"files": [file_ref("f1"), file_ref("f2")]})

        assert response.status_code == 201
        data = response.json()
        assert len(data["tasks"]) == 2
        assert all(task["status"] == "PENDING" for task in data["tasks"])

        scheduled_for = datetime.fromisoformat(data["scheduled_for"])
        assert utcnow() < scheduled_for <= utcnow() + timedelta(days=1)
        assert " 03:00 " in format_local(scheduled_for)
        assert supervisor.dispatched == []

    def test_immediate_dispatches_each_file(self, client, supervisor):
        response = client.post("/api/v1/parse-tasks", json={"files": [file_ref("f1"), file_ref("f2")], "immediate": True})

        assert response.status_code == 201
        ids = [task["id"] for task in response.json()["tasks"]]
        assert supervisor.dispatched == [(TaskKind.PARSE, task_id, False) for task_id in ids]

    def test_unsupported_type(self, client, db_session):
        response = client.post("/api/v1/parse-tasks", json={"files": [file_ref("f1"), file_ref("f2", "application/msword")]})

        assert response.status_code == 400
        assert task_ledger.list_tasks(db_session, TaskKind.PARSE) == []

    def test_empty_file_list(self, client):
        response = client.post("/api/v1/parse-tasks", json={"files": []})

        assert response.status_code == 422


class TestParseUpload:

    def test_upload_stores_and_queues(self, client, fake_storage, monkeypatch):
        monkeypatch.setattr("app.api.endpoints.parse_tasks.get_storage", lambda: fake_storage)

        response = client.post(
            "/api/v1/parse-tasks/upload",
            files=[("files", ("jane.docx", b"PK fake docx", DOCX_CONTENT_TYPE))],
            data={"immediate": "false"},
        )

        assert response.status_code == 201
        task = response.json()["tasks"][0]
        assert task["content_type"] == DOCX_CONTENT_TYPE
        assert task["original_name"] == "jane.docx"
        assert task["object_name"].startswith("resumes/")
        assert fake_storage.download(task["object_name"]) == b"PK fake docx"

    def test_upload_rejects_doc(self, client, fake_storage, monkeypatch):
        monkeypatch.setattr("app.api.endpoints.parse_tasks.get_storage", lambda: fake_storage)

        response = client.post(
            "/api/v1/parse-tasks/upload",
            files=[("files", ("old.doc", b"\xd0\xcf\x11\xe0", "application/msword"))],
        )

        assert response.status_code == 400
        assert fake_storage.objects == {}


class TestParseRunNow:

    def test_run_moves_to_running(self, client, db_session, supervisor):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]

        response = client.post(f"/api/v1/parse-tasks/{task_id}/run")

        assert response.status_code == 202
        assert response.json()["status"] == "RUNNING"
        assert task_ledger.get_by_id(db_session, TaskKind.PARSE, task_id).status == TaskStatus.RUNNING
        assert supervisor.dispatched == [(TaskKind.PARSE, task_id, True)]

    def test_run_twice_conflicts(self, client, supervisor):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]
        client.post(f"/api/v1/parse-tasks/{task_id}/run")

        response = client.post(f"/api/v1/parse-tasks/{task_id}/run")

        assert response.status_code == 409
        assert len(supervisor.dispatched) == 1

    def test_run_unknown_task(self, client):
        assert client.post("/api/v1/parse-tasks/missing/run").status_code == 404
        assert client.get("/api/v1/parse-tasks/missing").status_code == 404

    def test_stream_returns_event_stream(self, client, db_session, supervisor):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]

        response = client.post(f"/api/v1/parse-tasks/{task_id}/stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert task_ledger.get_by_id(db_session, TaskKind.PARSE, task_id).status == TaskStatus.RUNNING


class TestParseManagement:

    def test_list_filtered_by_status(self, client):
        ids = [task["id"] for task in client.post("/api/v1/parse-tasks", json={"files": [file_ref("a"), file_ref("b")]}).json()["tasks"]]
        client.post(f"/api/v1/parse-tasks/{ids[0]}/cancel")

        response = client.get("/api/v1/parse-tasks", params={"status": "CANCELLED"})

        assert response.status_code == 200
        assert [task["id"] for task in response.json()] == [ids[0]]

    def test_cancel_running_conflicts(self, client):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]
        client.post(f"/api/v1/parse-tasks/{task_id}/run")

        assert client.post(f"/api/v1/parse-tasks/{task_id}/cancel").status_code == 409

    def test_delete(self, client):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]

        assert client.delete(f"/api/v1/parse-tasks/{task_id}").status_code == 204
        assert client.get(f"/api/v1/parse-tasks/{task_id}").status_code == 404

    def test_delete_running_conflicts(self, client):
        task_id = client.post("/api/v1/parse-tasks", json={"files": [file_ref()]}).json()["tasks"][0]["id"]
        client.post(f"/api/v1/parse-tasks/{task_id}/run")

        response = client.delete(f"/api/v1/parse-tasks/{task_id}")

        assert response.status_code == 409
        assert client.get(f"/api/v1/parse-tasks/{task_id}").json()["status"] == "RUNNING"
