"""Inbox, reply threading and email log tests"""
import pytest
from datetime import datetime, timezone, timedelta
from fastapi import status

from app.models.campaign import Campaign
from app.models.email_log import EmailLog
from app.models.inbox_message import InboxMessage
from app.services.inbox_service import reply_address, reply_subject


@pytest.fixture
def inbox_message(db_session):
    message = InboxMessage(
        email_id="rcv_1",
        message_id="<abc@mail.gmail.com>",
        from_address="Ana Lopez <ana@example.com>",
        to=["contact@bdefenelon.org"],
        subject="Question gala",
        text="Bonjour",
        received_at=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc),
    )
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)
    return message


@pytest.mark.high
class TestInbox:
    def test_list_newest_first(self, staff_client, db_session, inbox_message):
        db_session.add(InboxMessage(
            email_id="rcv_2", from_address="bob@example.com", subject="Later",
            received_at=inbox_message.received_at + timedelta(hours=1)
        ))
        db_session.commit()

        body = staff_client.get("/api/inbox", params={"limit": 1}).json()

        assert [m["subject"] for m in body["messages"]] == ["Later"]
        assert body["pagination"] == {"total": 2, "pages": 2, "page": 1, "limit": 1}

    def test_get_message_includes_body(self, staff_client, inbox_message):
        message = staff_client.get(f"/api/inbox/{inbox_message.id}").json()

        assert message["text"] == "Bonjour"
        assert message["message_id"] == "<abc@mail.gmail.com>"

    def test_unknown_message(self, staff_client):
        assert staff_client.get("/api/inbox/999").status_code == status.HTTP_404_NOT_FOUND

    def test_inbox_requires_staff(self, member_client):
        assert member_client.get("/api/inbox").status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.critical
class TestInboxReply:
    """Replies go to the sender and stay in the same thread"""

    def test_reply_is_threaded(self, staff_client, inbox_message, mock_email_service):
        response = staff_client.post(f"/api/inbox/{inbox_message.id}/reply", json={"message": "Oui\nÀ bientôt"})

        assert response.json() == {"success": True, "id": "email_test123"}
        params = mock_email_service.Emails.send.call_args[0][0]
        assert params["to"] == "ana@example.com"
        assert params["subject"] == "Re: Question gala"
        assert params["html"] == "<p>Oui</p><p>À bientôt</p>"
        assert params["headers"] == {
            "In-Reply-To": "<abc@mail.gmail.com>", "References": "<abc@mail.gmail.com>"
        }

    def test_reply_prefix_added_once(self):
        assert reply_subject("RE: Question") == "RE: Question"
        assert reply_subject("") == "Re: "

    def test_reply_address_from_header(self):
        assert reply_address("Ana <ana@example.com>") == "ana@example.com"
        assert reply_address(" ana@example.com ") == "ana@example.com"

    def test_reply_without_message_id_has_no_thread_headers(self, staff_client, db_session, mock_email_service):
        message = InboxMessage(email_id="rcv_3", from_address="bob@example.com", subject="Hi",
                               received_at=datetime.now(timezone.utc))
        db_session.add(message)
        db_session.commit()

        staff_client.post(f"/api/inbox/{message.id}/reply", json={"message": "<b>Hello</b>", "subject": "Custom"})

        params = mock_email_service.Emails.send.call_args[0][0]
        assert "headers" not in params
        assert params["subject"] == "Re: Custom"
        assert params["html"] == "<b>Hello</b>"

    def test_provider_failure_is_bad_gateway(self, staff_client, inbox_message, mock_email_service):
        mock_email_service.Emails.send.side_effect = Exception("provider down")

        response = staff_client.post(f"/api/inbox/{inbox_message.id}/reply", json={"message": "Oui"})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_blank_reply_rejected(self, staff_client, inbox_message, mock_email_service):
        response = staff_client.post(f"/api/inbox/{inbox_message.id}/reply", json={"message": "   "})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        mock_email_service.Emails.send.assert_not_called()


@pytest.mark.high
class TestEmailLogs:
    def add_logs(self, db_session, owner):
        campaign = Campaign(user_id=owner.id, name="Gala", subject="Gala", content="<p>Hi</p>")
        db_session.add(campaign)
        db_session.flush()
        db_session.add_all([
            EmailLog(campaign_id=campaign.id, email_id="e1", recipient="Ana@example.com",
                     event_type="email.delivered", status="delivered"),
            EmailLog(campaign_id=campaign.id, email_id="e2", recipient="bob@example.com",
                     event_type="email.bounced", status="bounced", bounce_type="Permanent"),
        ])
        db_session.commit()

    def test_filter_by_status(self, staff_client, staff_user, db_session):
        self.add_logs(db_session, staff_user)

        body = staff_client.get("/api/logs/emails", params={"status": "bounced"}).json()

        assert [log["email_id"] for log in body["logs"]] == ["e2"]
        assert body["logs"][0]["campaign_name"] == "Gala"
        assert body["logs"][0]["bounce_type"] == "Permanent"

    def test_all_status_and_recipient_search(self, staff_client, staff_user, db_session):
        self.add_logs(db_session, staff_user)

        assert staff_client.get("/api/logs/emails", params={"status": "ALL"}).json()["pagination"]["total"] == 2
        body = staff_client.get("/api/logs/emails", params={"recipient": "ana@"}).json()
        assert [log["email_id"] for log in body["logs"]] == ["e1"]
