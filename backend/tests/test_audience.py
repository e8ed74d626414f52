"""Contacts, segments, topics and unsubscribe tests"""
import pytest
from unittest.mock import Mock
from fastapi import status

from app.models.contact import Contact, Topic, ContactTopic, UnsubscribedRecipient
from app.services.audience_service import import_contacts_csv


@pytest.mark.high
class TestContacts:
    """Contacts are created at the provider first and mirrored locally"""

    def test_create_contact_records_provider_id(self, staff_client, db_session, mock_email_service):
        response = staff_client.post("/api/contacts", json={
            "email": "ana@example.com", "first_name": "Ana", "properties": {"promo": "2027"}
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["resend_id"] == "contact_test123"
        mock_email_service.Contacts.create.assert_called_once()
        assert db_session.query(Contact).one().properties == {"promo": "2027"}

    def test_create_contact_survives_provider_failure(self, staff_client, db_session, mock_email_service):
        mock_email_service.Contacts.create.side_effect = Exception("provider down")

        response = staff_client.post("/api/contacts", json={"email": "ana@example.com"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["resend_id"] is None

    def test_duplicate_contact_rejected(self, staff_client, db_session, mock_email_service):
        db_session.add(Contact(email="ana@example.com"))
        db_session.commit()

        response = staff_client.post("/api/contacts", json={"email": "ana@example.com"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_search_is_paginated_and_case_insensitive(self, staff_client, db_session):
        db_session.add_all([
            Contact(email="ana@example.com", first_name="Ana"),
            Contact(email="bob@example.com", last_name="ANAGRAM"),
            Contact(email="carl@example.com"),
        ])
        db_session.commit()

        body = staff_client.get("/api/contacts", params={"query": "ana", "limit": 1}).json()

        assert body["meta"] == {"total": 2, "page": 1, "limit": 1, "total_pages": 2}
        assert len(body["data"]) == 1

    def test_update_goes_to_provider_first(self, staff_client, db_session, mock_email_service):
        contact = Contact(email="ana@example.com", resend_id="ct_1")
        db_session.add(contact)
        db_session.commit()
        mock_email_service.Contacts.update = Mock(side_effect=Exception("rejected"))

        response = staff_client.patch(f"/api/contacts/{contact.id}", json={"first_name": "Anna"})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        db_session.expire_all()
        assert db_session.query(Contact).one().first_name is None

    def test_update_unlinked_contact_is_local_only(self, staff_client, db_session, mock_email_service):
        contact = Contact(email="ana@example.com")
        db_session.add(contact)
        db_session.commit()

        response = staff_client.patch(f"/api/contacts/{contact.id}", json={"first_name": "Anna"})

        assert response.json()["first_name"] == "Anna"
        mock_email_service.Contacts.update.assert_not_called()

    def test_delete_contact(self, staff_client, db_session, mock_email_service):
        contact = Contact(email="ana@example.com", resend_id="ct_1")
        db_session.add(contact)
        db_session.commit()

        assert staff_client.delete(f"/api/contacts/{contact.id}").json() == {"success": True}
        # Contacts without an audience are removed by id alone
        mock_email_service.Contacts.remove.assert_called_once_with(id="ct_1")
        assert db_session.query(Contact).count() == 0

    def test_unknown_contact_404(self, staff_client):
        assert staff_client.get("/api/contacts/999").status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.high
class TestCsvImport:
    def test_import_upserts_and_counts(self, db_session, mock_email_service):
        db_session.add(Contact(email="ana@example.com", first_name="Old"))
        db_session.commit()
        content = "Email,First Name,Last Name\nana@example.com,Ana,Lopez\nnew@example.com,New,\nnot-an-email,X,Y\n\n"

        result = import_contacts_csv(content, db_session)

        assert result == {"success_count": 2, "error_count": 1}
        assert db_session.query(Contact).count() == 2
        ana = db_session.query(Contact).filter(Contact.email == "ana@example.com").one()
        assert (ana.first_name, ana.last_name) == ("Ana", "Lopez")

    def test_import_without_header(self, db_session, mock_email_service):
        assert import_contacts_csv("a@example.com\nb@example.com,B", db_session)["success_count"] == 2

    def test_upload_endpoint(self, staff_client, db_session, mock_email_service):
        files = {"file": ("contacts.csv", b"email\nupload@example.com", "text/csv")}

        response = staff_client.post("/api/contacts/import", files=files)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success_count": 1, "error_count": 0}


@pytest.mark.high
class TestSegmentsAndTopics:
    def test_create_and_list_segment(self, staff_client):
        created = staff_client.post("/api/segments", json={
            "name": "Promo 2027", "query": {"unsubscribed": False, "properties": {"promo": "2027"}}
        })
        assert created.status_code == status.HTTP_200_OK
        assert created.json()["query"] == {"unsubscribed": False, "properties": {"promo": "2027"}}

        listed = staff_client.get("/api/segments").json()
        assert listed[0]["campaign_count"] == 0

    def test_segment_rejects_unknown_query_keys(self, staff_client):
        response = staff_client.post("/api/segments", json={"name": "X", "query": {"city": "Paris"}})
        assert response.status_code == 422

    def test_segment_name_required(self, staff_client):
        response = staff_client.post("/api/segments", json={"name": "  "})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_topics_with_contact_counts(self, staff_client, db_session):
        topic_id = staff_client.post("/api/topics", json={"name": "Newsletter"}).json()["id"]
        contact = Contact(email="ana@example.com")
        db_session.add(contact)
        db_session.flush()
        db_session.add(ContactTopic(contact_id=contact.id, topic_id=topic_id))
        db_session.commit()

        topics = staff_client.get("/api/topics").json()
        assert topics[0]["contact_count"] == 1


@pytest.mark.critical
class TestUnsubscribe:
    """Public unsubscribe and preference center"""

    def test_one_click_unsubscribe_is_idempotent(self, client, db_session):
        for _ in range(2):
            response = client.post("/api/unsubscribe", params={"email": "ana@example.com"})
            assert response.json() == {"success": True}

        entry = db_session.query(UnsubscribedRecipient).one()
        assert entry.reason == "One-Click Unsubscribe"

    def test_unsubscribe_requires_email(self, client):
        assert client.post("/api/unsubscribe").status_code == status.HTTP_400_BAD_REQUEST

    def test_preferences_round_trip(self, client, db_session):
        public = Topic(name="Newsletter")
        hidden = Topic(name="Staff", visibility="private")
        contact = Contact(email="ana@example.com")
        db_session.add_all([public, hidden, contact])
        db_session.commit()

        response = client.patch("/api/public/preferences", json={
            "email": "ana@example.com", "unsubscribed": False, "topic_ids": [public.id]
        })
        assert response.json() == {"success": True}

        prefs = client.get("/api/public/preferences", params={"email": "ana@example.com"}).json()
        assert prefs["unsubscribed"] is False
        assert prefs["topic_ids"] == [public.id]
        assert [t["name"] for t in prefs["topics"]] == ["Newsletter"]

    def test_preferences_replace_topics_and_sync_global_list(self, client, db_session):
        first = Topic(name="A")
        second = Topic(name="B")
        contact = Contact(email="ana@example.com")
        db_session.add_all([first, second, contact])
        db_session.flush()
        db_session.add(ContactTopic(contact_id=contact.id, topic_id=first.id))
        db_session.commit()

        client.patch("/api/public/preferences", json={
            "email": "ana@example.com", "unsubscribed": True, "topic_ids": [first.id, second.id]
        })
        db_session.expire_all()
        assert db_session.query(ContactTopic).count() == 2
        assert db_session.query(UnsubscribedRecipient).count() == 1
        assert db_session.query(Contact).one().unsubscribed is True

        client.patch("/api/public/preferences", json={"email": "ana@example.com", "unsubscribed": False})
        db_session.expire_all()
        assert db_session.query(ContactTopic).count() == 0
        assert db_session.query(UnsubscribedRecipient).count() == 0

    def test_preferences_unknown_contact(self, client):
        response = client.patch("/api/public/preferences", json={"email": "nobody@example.com"})
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_preferences_reject_unknown_topic(self, client, db_session):
        topic = Topic(name="Newsletter")
        contact = Contact(email="ana@example.com")
        db_session.add_all([topic, contact])
        db_session.flush()
        db_session.add(ContactTopic(contact_id=contact.id, topic_id=topic.id))
        db_session.commit()

        response = client.patch("/api/public/preferences", json={
            "email": "ana@example.com", "unsubscribed": True, "topic_ids": [topic.id, 9999]
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        db_session.expire_all()
        assert [ct.topic_id for ct in db_session.query(ContactTopic).all()] == [topic.id]
        assert db_session.query(Contact).one().unsubscribed is False
        assert db_session.query(UnsubscribedRecipient).count() == 0
