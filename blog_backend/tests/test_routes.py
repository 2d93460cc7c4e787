"""
Tests for the backup and archive HTTP routes.
"""
import pytest
from pathlib import Path
from fastapi.testclient import TestClient

from blog_backend.core.security import API_KEY
from blog_backend.main import create_app

HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def client(backup_manager, archive_manager):
    app = create_app(backup_manager, archive_manager, enable_scheduler=False)
    with TestClient(app) as client:
        yield client


class TestAuth:
    def test_health_check_is_public(self, client):
        """Should serve the health check without a key"""
        assert client.get("/").status_code == 200

    def test_missing_api_key(self, client):
        """Should return 401 without an API key"""
        assert client.get("/api/backups/stats").status_code == 401
        assert client.get("/api/archive/stats").status_code == 401


class TestBackupRoutes:
    def test_full_backup(self, client):
        """Should run a full backup"""
        response = client.post("/api/backups/full", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["kind"] == "full"

    def test_incremental_falls_back_to_full(self, client):
        """Should fall back to full without a baseline"""
        response = client.post("/api/backups/incremental", headers=HEADERS)
        assert response.json()["kind"] == "full"

    def test_conflict(self, client, guard):
        """Should return 409 while another task is active"""
        with guard.hold("archive task"):
            response = client.post("/api/backups/full", headers=HEADERS)

        assert response.status_code == 409

    def test_history_pagination(self, client):
        """Should page the backup history"""
        for _ in range(3):
            client.post("/api/backups/full", headers=HEADERS)

        response = client.get("/api/backups/history?page=2&limit=2", headers=HEADERS)

        body = response.json()
        assert body["total"] == 3
        assert body["total_pages"] == 2
        assert len(body["backups"]) == 1

    def test_validate_and_restore(self, client, store):
        """Should validate a backup and restore a table from it"""
        task = client.post("/api/backups/full", headers=HEADERS).json()
        file_name = Path(task["file_path"]).name

        assert client.post(
            "/api/backups/validate", json={"backup_file": file_name}, headers=HEADERS
        ).json()["is_valid"] is True

        store.execute("DELETE FROM comments")
        response = client.post("/api/backups/restore", json={
            "backup_file": file_name,
            "target_tables": ["comments"],
            "drop_existing": True,
        }, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["tables_restored"] == ["comments"]
        assert store.query("SELECT COUNT(*) AS n FROM comments")[0]["n"] == 3

    def test_restore_missing_file(self, client):
        """Should return 400 for a missing backup file"""
        response = client.post("/api/backups/restore", json={"backup_file": "missing.sql"}, headers=HEADERS)
        assert response.status_code == 400

    def test_stats_and_current_task(self, client):
        """Should report stats and no current task when idle"""
        client.post("/api/backups/full", headers=HEADERS)

        assert client.get("/api/backups/stats", headers=HEADERS).json()["total_backups"] == 1
        assert client.get("/api/backups/current-task", headers=HEADERS).json() is None

    def test_config_hides_encryption_key(self, client):
        """Should not return the encryption key"""
        body = client.get("/api/backups/config", headers=HEADERS).json()

        assert "encryption_key" not in body
        assert "max_backups" in body

    def test_recommendations(self, client):
        """Should return recommendations"""
        response = client.get("/api/backups/recommendations", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["type"] == "warning"

    def test_download(self, client):
        """Should stream the backup file"""
        task = client.post("/api/backups/full", headers=HEADERS).json()

        response = client.get(f"/api/backups/{task['id']}/download", headers=HEADERS)

        assert response.status_code == 200
        assert b"CREATE TABLE" in response.content

    def test_delete(self, client):
        """Should delete a backup and 404 the second time"""
        task = client.post("/api/backups/full", headers=HEADERS).json()

        assert client.delete(f"/api/backups/{task['id']}", headers=HEADERS).status_code == 204
        assert client.delete(f"/api/backups/{task['id']}", headers=HEADERS).status_code == 404


class TestArchiveRoutes:
    def test_create_and_execute_task(self, client):
        """Should create, execute and list an archive task"""
        created = client.post("/api/archive/tasks", json={
            "table_name": "comments", "condition": "is_approved = 0"
        }, headers=HEADERS)

        assert created.status_code == 201
        task_id = created.json()["id"]

        executed = client.post(f"/api/archive/tasks/{task_id}/execute", headers=HEADERS)
        assert executed.json()["status"] == "completed"
        assert executed.json()["records_processed"] == 1

        assert client.get(f"/api/archive/tasks/{task_id}", headers=HEADERS).json()["status"] == "completed"
        assert len(client.get("/api/archive/tasks", headers=HEADERS).json()) == 1

    def test_create_task_for_missing_table(self, client):
        """Should return 400 for a missing table"""
        response = client.post("/api/archive/tasks", json={
            "table_name": "nope", "condition": "1 = 1"
        }, headers=HEADERS)
        assert response.status_code == 400

    def test_unknown_task(self, client):
        """Should return 404 for an unknown task"""
        assert client.get("/api/archive/tasks/missing", headers=HEADERS).status_code == 404

    def test_archive_table_and_restore(self, client, store):
        """Should archive old rows and restore them"""
        task = client.post("/api/archive/tables/comments/archive", headers=HEADERS).json()
        assert task["records_processed"] == 2

        response = client.post("/api/archive/restore", json={
            "archive_file_name": task["archive_file"]
        }, headers=HEADERS)

        assert response.json()["records_restored"] == 2
        assert store.query("SELECT COUNT(*) AS n FROM comments")[0]["n"] == 3

    def test_batch_archive(self, client):
        """Should create one task per table"""
        response = client.post("/api/archive/tables/batch-archive", json={
            "tables": [{"name": "comments"}, {"name": "articles", "date_column": "created_at"}]
        }, headers=HEADERS)

        assert len(response.json()["task_ids"]) == 2

    def test_cleanup_stats_config_history(self, client):
        """Should serve cleanup, stats, config and history"""
        client.post("/api/archive/tables/comments/archive", headers=HEADERS)

        assert client.post("/api/archive/cleanup", headers=HEADERS).json() == {"files_deleted": 0}
        assert client.get("/api/archive/stats", headers=HEADERS).json()["total_records_archived"] == 2
        assert client.get("/api/archive/config", headers=HEADERS).json()["archive_after_days"] == 90
        assert len(client.get("/api/archive/history", headers=HEADERS).json()) == 1
