"""Internal messaging and guest ticket tests"""
import pytest
from datetime import datetime, timezone, timedelta
from fastapi import status

from app.models.conversation import Conversation, ConversationParticipant, Message
from app.models.user import User


@pytest.mark.high
class TestConversations:
    def test_create_conversation_is_reused(self, member_client, member_user, make_user):
        other = make_user("friend@edufenelon.org", name="Friend")

        first = member_client.post("/api/conversations", json={"target_user_id": other.id}).json()
        second = member_client.post("/api/conversations", json={"target_user_id": other.id}).json()

        assert first["id"] == second["id"]
        assert {p["id"] for p in first["participants"]} == {member_user.id, other.id}

    def test_cannot_talk_to_self(self, member_client, member_user):
        response = member_client.post("/api/conversations", json={"target_user_id": member_user.id})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_send_and_read_messages(self, member_client, make_user):
        other = make_user("friend@edufenelon.org", name="Friend")
        conversation_id = member_client.post("/api/conversations", json={"target_user_id": other.id}).json()["id"]

        sent = member_client.post(f"/api/conversations/{conversation_id}/messages", json={"content": " Salut "})
        assert sent.json()["content"] == "Salut"

        messages = member_client.get(f"/api/conversations/{conversation_id}/messages").json()
        assert [m["content"] for m in messages] == ["Salut"]

        conversations = member_client.get("/api/conversations").json()
        assert conversations[0]["last_message"]["content"] == "Salut"
        assert member_client.post(f"/api/conversations/{conversation_id}/read").json() == {"success": True}

    def test_only_recent_messages_returned(self, member_client, member_user, db_session, make_user):
        other = make_user("friend@edufenelon.org")
        conversation_id = member_client.post("/api/conversations", json={"target_user_id": other.id}).json()["id"]
        db_session.add(Message(conversation_id=conversation_id, sender_id=other.id, content="old",
                               created_at=datetime.now(timezone.utc) - timedelta(days=8)))
        db_session.add(Message(conversation_id=conversation_id, sender_id=other.id, content="new"))
        db_session.commit()

        messages = member_client.get(f"/api/conversations/{conversation_id}/messages").json()
        assert [m["content"] for m in messages] == ["new"]

    def test_non_participant_forbidden(self, client, login, make_user):
        alice = make_user("alice@edufenelon.org")
        bob = make_user("bob@edufenelon.org")
        eve = make_user("eve@edufenelon.org")
        login(client, alice)
        conversation_id = client.post("/api/conversations", json={"target_user_id": bob.id}).json()["id"]

        login(client, eve)
        response = client.get(f"/api/conversations/{conversation_id}/messages")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_search_users(self, member_client, member_user, make_user, db_session):
        make_user("jeanne@edufenelon.org", name="Jeanne")
        db_session.add(User(email="guest-1@ticket.local", name="Jeanne Guest", role="guest"))
        db_session.commit()

        assert member_client.get("/api/users/search", params={"q": "j"}).json() == []
        results = member_client.get("/api/users/search", params={"q": "jean"}).json()
        assert [u["email"] for u in results] == ["jeanne@edufenelon.org"]


@pytest.mark.critical
class TestTickets:
    """Guests open tickets and can only reach them with their token"""

    def open_ticket(self, client):
        response = client.post("/api/public/tickets", json={"subject": "Remboursement", "name": "Paul"})
        assert response.status_code == status.HTTP_200_OK
        return response.json()

    def test_guest_flow(self, client):
        ticket = self.open_ticket(client)
        headers = {"X-Ticket-Token": ticket["guest_token"]}

        sent = client.post(f"/api/public/tickets/{ticket['conversation_id']}/messages",
                           json={"content": "Bonjour"}, headers=headers)
        assert sent.status_code == status.HTTP_200_OK

        thread = client.get(f"/api/public/tickets/{ticket['conversation_id']}", headers=headers).json()
        assert thread["ticket_status"] == "OPEN"
        assert [m["content"] for m in thread["messages"]] == ["Bonjour"]

    def test_wrong_token_forbidden(self, client):
        ticket = self.open_ticket(client)

        response = client.get(f"/api/public/tickets/{ticket['conversation_id']}",
                              headers={"X-Ticket-Token": "guess"})
        assert response.status_code == status.HTTP_403_FORBIDDEN

        response = client.post(f"/api/public/tickets/{ticket['conversation_id']}/messages", json={"content": "x"})
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_staff_reply_and_resolve(self, client, login, staff_user, db_session):
        ticket = self.open_ticket(client)
        headers = {"X-Ticket-Token": ticket["guest_token"]}
        login(client, staff_user)

        tickets = client.get("/api/tickets", params={"status": "OPEN"}).json()
        assert [t["id"] for t in tickets] == [ticket["conversation_id"]]

        reply = client.post(f"/api/conversations/{ticket['conversation_id']}/messages", json={"content": "On regarde"})
        assert reply.status_code == status.HTTP_200_OK
        assert db_session.query(ConversationParticipant).filter(
            ConversationParticipant.user_id == staff_user.id
        ).count() == 1

        resolved = client.post(f"/api/tickets/{ticket['conversation_id']}/resolve").json()
        assert resolved["ticket_status"] == "RESOLVED"

        closed = client.post(f"/api/public/tickets/{ticket['conversation_id']}/messages",
                             json={"content": "Merci"}, headers=headers)
        assert closed.status_code == status.HTTP_400_BAD_REQUEST
        assert closed.json()["detail"] == "Ticket is closed"

    def test_member_cannot_read_ticket(self, client, login, member_user):
        ticket = self.open_ticket(client)
        login(client, member_user)

        response = client.get(f"/api/conversations/{ticket['conversation_id']}/messages")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_ticket_requires_subject_and_name(self, client):
        response = client.post("/api/public/tickets", json={"subject": " ", "name": "Paul"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_ticket_list_requires_staff(self, member_client):
        assert member_client.get("/api/tickets").status_code == status.HTTP_403_FORBIDDEN

    def test_guest_user_created(self, client, db_session):
        ticket = self.open_ticket(client)
        guest = db_session.query(User).filter(User.id == ticket["guest_id"]).one()
        assert guest.role == "guest"
        assert db_session.query(Conversation).one().guest_name == "Paul"
