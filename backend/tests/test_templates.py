"""Email template and folder tests"""
import pytest
from fastapi import status

from app.models.email_template import EmailTemplate, TemplateFolder


@pytest.mark.high
class TestFolders:
    def test_create_rename_and_list(self, staff_client):
        folder = staff_client.post("/api/templates/folders", json={"name": " Newsletters "}).json()
        assert folder["name"] == "Newsletters"

        renamed = staff_client.patch(f"/api/templates/folders/{folder['id']}", json={"name": "Lettres"}).json()
        assert renamed["name"] == "Lettres"

        staff_client.post("/api/templates", json={"name": "Octobre", "folder_id": folder["id"]})
        folders = staff_client.get("/api/templates/folders").json()
        assert folders[0]["name"] == "Lettres"
        assert [t["name"] for t in folders[0]["templates"]] == ["Octobre"]

    def test_folder_name_required(self, staff_client):
        response = staff_client.post("/api/templates/folders", json={"name": "  "})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_folder_keeps_templates(self, staff_client, db_session):
        folder_id = staff_client.post("/api/templates/folders", json={"name": "Tmp"}).json()["id"]
        template_id = staff_client.post("/api/templates", json={"name": "Keep", "folder_id": folder_id}).json()["id"]

        assert staff_client.delete(f"/api/templates/folders/{folder_id}").json() == {"success": True}

        db_session.expire_all()
        assert db_session.query(TemplateFolder).count() == 0
        assert db_session.query(EmailTemplate).filter(EmailTemplate.id == template_id).one().folder_id is None

    def test_folders_are_private(self, client, login, make_user):
        owner = make_user("owner@edufenelon.org", role="staff")
        other = make_user("other@edufenelon.org", role="staff")
        login(client, owner)
        folder_id = client.post("/api/templates/folders", json={"name": "Mine"}).json()["id"]

        login(client, other)
        assert client.get("/api/templates/folders").json() == []
        response = client.patch(f"/api/templates/folders/{folder_id}", json={"name": "Stolen"})
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.high
class TestTemplates:
    def test_create_starts_empty(self, staff_client):
        template = staff_client.post("/api/templates", json={"name": "Gala"}).json()

        assert template["subject"] == "Nouvel e-mail"
        assert template["content"] == {}
        assert template["deleted_at"] is None

    def test_import_uses_name_as_subject(self, staff_client):
        template = staff_client.post("/api/templates/import", json={
            "name": "Soirée", "content": "<h1>Bonsoir</h1>"
        }).json()

        assert template["subject"] == "Soirée"
        assert template["content"] == "<h1>Bonsoir</h1>"

    def test_create_in_unknown_folder(self, staff_client):
        response = staff_client.post("/api/templates", json={"name": "X", "folder_id": 999})
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_update_fields(self, staff_client):
        template_id = staff_client.post("/api/templates", json={"name": "Draft"}).json()["id"]

        updated = staff_client.patch(f"/api/templates/{template_id}", json={
            "subject": "Hello {{firstName}}", "content": {"type": "doc", "content": []}
        }).json()

        assert updated["name"] == "Draft"
        assert updated["subject"] == "Hello {{firstName}}"
        assert updated["content"] == {"type": "doc", "content": []}

    def test_filter_by_folder(self, staff_client):
        folder_id = staff_client.post("/api/templates/folders", json={"name": "F"}).json()["id"]
        staff_client.post("/api/templates", json={"name": "In", "folder_id": folder_id})
        staff_client.post("/api/templates", json={"name": "Out"})

        assert len(staff_client.get("/api/templates").json()) == 2
        in_folder = staff_client.get("/api/templates", params={"folder_id": folder_id}).json()
        assert [t["name"] for t in in_folder] == ["In"]

    def test_move_between_folders(self, staff_client):
        folder_id = staff_client.post("/api/templates/folders", json={"name": "F"}).json()["id"]
        template_id = staff_client.post("/api/templates", json={"name": "T"}).json()["id"]

        moved = staff_client.post(f"/api/templates/{template_id}/move", json={"folder_id": folder_id}).json()
        assert moved["folder_id"] == folder_id

        back = staff_client.post(f"/api/templates/{template_id}/move", json={"folder_id": None}).json()
        assert back["folder_id"] is None

    def test_member_cannot_use_templates(self, member_client):
        assert member_client.get("/api/templates").status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.high
class TestTemplateTrash:
    """Soft delete, restore and permanent delete"""

    def test_soft_delete_and_restore(self, staff_client):
        template_id = staff_client.post("/api/templates", json={"name": "T"}).json()["id"]

        staff_client.delete(f"/api/templates/{template_id}")
        assert staff_client.get("/api/templates").json() == []
        trash = staff_client.get("/api/templates/deleted").json()
        assert [t["id"] for t in trash] == [template_id]
        assert trash[0]["deleted_at"] is not None

        staff_client.post(f"/api/templates/{template_id}/restore")
        assert staff_client.get("/api/templates/deleted").json() == []
        assert len(staff_client.get("/api/templates").json()) == 1

    def test_deleted_templates_hidden_from_folders(self, staff_client):
        folder_id = staff_client.post("/api/templates/folders", json={"name": "F"}).json()["id"]
        template_id = staff_client.post("/api/templates", json={"name": "T", "folder_id": folder_id}).json()["id"]

        staff_client.delete(f"/api/templates/{template_id}")

        assert staff_client.get("/api/templates/folders").json()[0]["templates"] == []

    def test_permanent_delete(self, staff_client, db_session):
        template_id = staff_client.post("/api/templates", json={"name": "T"}).json()["id"]

        assert staff_client.delete(f"/api/templates/{template_id}/permanent").json() == {"success": True}

        assert db_session.query(EmailTemplate).count() == 0
        assert staff_client.get(f"/api/templates/{template_id}").status_code == status.HTTP_404_NOT_FOUND
