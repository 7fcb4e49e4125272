"""
Tests for the HTTP API.

Verifies:
1. Bearer tokens identify the member and organization
2. The topic, poll and election endpoints drive the engines end to end
3. Domain errors map to their HTTP status and error code
4. Decision records and the audit trail are readable
"""

from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from consent_engine.core.database import get_session
from consent_engine.core.security import create_access_token
from consent_engine.main import app

API = "/api/v1"


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
async def client(session_factory, org):
    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth(org):
    """Authorization headers for a member of the seeded organization."""

    def headers(member_id: UUID) -> dict[str, str]:
        token = create_access_token(member_id, org.organization_id)
        return {"Authorization": f"Bearer {token}"}

    return headers


async def create_topic(client: AsyncClient, auth, org) -> str:
    response = await client.post(
        f"{API}/messages/topics",
        json={
            "channel_id": str(org.team_channel),
            "title": "Quiet hours",
            "description": "No meetings before ten",
        },
        headers=auth(org.alice),
    )
    assert response.status_code == 201
    return response.json()["id"]


# =============================================================================
# TEST: AUTHENTICATION
# =============================================================================


class TestAuthentication:
    """Token handling."""

    async def test_missing_token(self, client: AsyncClient, org):
        response = await client.get(f"{API}/decisions")
        assert response.status_code == 401

    async def test_invalid_token(self, client: AsyncClient, org):
        response = await client.get(
            f"{API}/decisions", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    async def test_token_for_other_organization(self, client: AsyncClient, org):
        token = create_access_token(org.alice, uuid4())
        response = await client.get(
            f"{API}/decisions", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# =============================================================================
# TEST: TOPICS
# =============================================================================


class TestTopicEndpoints:
    """A topic from proposition to a withdrawn outcome."""

    async def test_topic_flow(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.post(
            f"{API}/messages/{message_id}/clarifications",
            json={"question": "Does this include calls with clients?"},
            headers=auth(org.bob),
        )
        assert response.status_code == 201
        clarification_id = response.json()["id"]

        response = await client.post(
            f"{API}/clarifications/{clarification_id}/answers",
            json={"answer": "Only internal meetings"},
            headers=auth(org.alice),
        )
        assert response.status_code == 201

        response = await client.get(
            f"{API}/messages/{message_id}/clarifications", headers=auth(org.carol)
        )
        assert response.status_code == 200
        [clarification] = response.json()
        assert clarification["answers"][0]["answer"] == "Only internal meetings"

        response = await client.post(
            f"{API}/messages/{message_id}/advance",
            json={"action": "open_consent"},
            headers=auth(org.alice),
        )
        assert response.json()["phase"] == "consent"

        response = await client.put(
            f"{API}/messages/{message_id}/response",
            json={"response": "objection"},
            headers=auth(org.bob),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_input"

        response = await client.put(
            f"{API}/messages/{message_id}/response",
            json={"response": "objection", "reason": "Standups are at nine"},
            headers=auth(org.bob),
        )
        assert response.status_code == 200
        assert response.json()["round"] == 1

        response = await client.post(
            f"{API}/messages/{message_id}/advance",
            json={"action": "resolve"},
            headers=auth(org.alice),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "outcome_required"

        response = await client.post(
            f"{API}/messages/{message_id}/advance",
            json={"action": "resolve", "outcome": "withdrawn"},
            headers=auth(org.alice),
        )
        assert response.status_code == 200
        assert response.json()["phase"] == "resolved"

        response = await client.get(f"{API}/messages/{message_id}/tool", headers=auth(org.bob))
        tool = response.json()["tool"]
        assert tool["outcome"] == "withdrawn"
        assert tool["decision_id"] is not None

        response = await client.get(
            f"{API}/decisions/{tool['decision_id']}", headers=auth(org.carol)
        )
        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "withdrawn"
        assert body["integrity_verified"] is True
        assert body["role_assignment"] is None

    async def test_non_facilitator_forbidden(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.post(
            f"{API}/messages/{message_id}/advance",
            json={"action": "open_clarification"},
            headers=auth(org.bob),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "not_authorized"

    async def test_outsider_forbidden(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.get(f"{API}/messages/{message_id}/tool", headers=auth(org.dave))

        assert response.status_code == 403
        assert response.json()["error"] == "not_eligible"

    async def test_unknown_message(self, client: AsyncClient, auth, org):
        response = await client.get(f"{API}/messages/{uuid4()}/tool", headers=auth(org.alice))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_unknown_channel(self, client: AsyncClient, auth, org):
        response = await client.post(
            f"{API}/messages/topics",
            json={"channel_id": str(uuid4()), "title": "Lost", "description": "Nowhere"},
            headers=auth(org.alice),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_malformed_body_reports_fields(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.put(
            f"{API}/messages/{message_id}/ballot",
            json={"choices": []},
            headers=auth(org.bob),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "invalid_input"
        assert [d["field"] for d in body["details"]] == ["body.choices"]

    async def test_ballot_on_topic_is_mismatch(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.put(
            f"{API}/messages/{message_id}/ballot",
            json={"choices": ["a"]},
            headers=auth(org.bob),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "tool_mismatch"

    async def test_rejected_submission_writes_nothing(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.post(
            f"{API}/messages/{message_id}/clarifications",
            json={"question": "Anyone outside the team?"},
            headers=auth(org.dave),
        )
        assert response.status_code == 403

        response = await client.get(
            f"{API}/messages/{message_id}/tool", headers=auth(org.alice)
        )
        assert response.json()["tool"]["phase"] == "proposition"
        assert response.json()["version"] == 1


# =============================================================================
# TEST: POLLS
# =============================================================================


class TestVotingEndpoints:
    """Ballots, close and results."""

    async def test_poll_flow(self, client: AsyncClient, auth, org):
        response = await client.post(
            f"{API}/messages/votings",
            json={
                "channel_id": str(org.orga_channel),
                "question": "Summer party venue?",
                "options": [
                    {"id": "lake", "label": "At the lake"},
                    {"id": "roof", "label": "On the roof"},
                ],
                "mode": "single",
            },
            headers=auth(org.owner),
        )
        assert response.status_code == 201
        message_id = response.json()["id"]

        response = await client.put(
            f"{API}/messages/{message_id}/ballot",
            json={"choices": ["lake", "roof"]},
            headers=auth(org.dave),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_choice_set"

        response = await client.put(
            f"{API}/messages/{message_id}/ballot",
            json={"choices": ["roof"]},
            headers=auth(org.dave),
        )
        assert response.status_code == 200
        assert response.json()["choices"] == ["roof"]

        response = await client.get(
            f"{API}/messages/{message_id}/results", headers=auth(org.dave)
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_phase"

        response = await client.post(f"{API}/messages/{message_id}/close", headers=auth(org.owner))
        assert response.status_code == 200
        assert response.json()["winners"] == ["roof"]

        response = await client.post(f"{API}/messages/{message_id}/close", headers=auth(org.owner))
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "already_closed"
        assert detail["tally"]["winners"] == ["roof"]

        response = await client.put(
            f"{API}/messages/{message_id}/ballot",
            json={"choices": ["lake"]},
            headers=auth(org.alice),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "voting_closed"

        response = await client.get(
            f"{API}/messages/{message_id}/results", headers=auth(org.alice)
        )
        assert response.status_code == 200
        assert response.json()["total_ballots"] == 1

    async def test_invalid_poll_definition(self, client: AsyncClient, auth, org):
        response = await client.post(
            f"{API}/messages/votings",
            json={
                "channel_id": str(org.orga_channel),
                "question": "Only one option?",
                "options": [{"id": "a", "label": "A"}],
            },
            headers=auth(org.owner),
        )
        assert response.status_code == 422


# =============================================================================
# TEST: ELECTIONS
# =============================================================================


class TestElectionEndpoints:
    """Nominations, candidates and the role assignment."""

    async def test_election_flow(self, client: AsyncClient, auth, org):
        response = await client.post(
            f"{API}/messages/elections",
            json={
                "channel_id": str(org.team_channel),
                "team_id": str(org.team_id),
                "role_id": str(org.role_id),
            },
            headers=auth(org.leader),
        )
        assert response.status_code == 201
        message_id = response.json()["id"]
        assert response.json()["tool"]["role_title"] == "Treasurer"

        response = await client.post(
            f"{API}/messages/{message_id}/nominations",
            json={"nominee_id": str(org.carol), "reason": "Keeps great records"},
            headers=auth(org.alice),
        )
        assert response.status_code == 201

        response = await client.post(
            f"{API}/messages/{message_id}/nominations",
            json={"nominee_id": str(org.carol), "reason": "Me too"},
            headers=auth(org.dave),
        )
        assert response.status_code == 403

        response = await client.get(
            f"{API}/messages/{message_id}/nominations", headers=auth(org.bob)
        )
        body = response.json()
        assert body == {
            "revealed": False,
            "count": 1,
            "has_nominated": False,
            "nominations": [],
            "tally": {},
        }

        for action in ("open_discussion", "open_change_round"):
            response = await client.post(
                f"{API}/messages/{message_id}/advance",
                json={"action": action},
                headers=auth(org.leader),
            )
            assert response.status_code == 200

        response = await client.get(
            f"{API}/messages/{message_id}/nominations", headers=auth(org.bob)
        )
        assert response.json()["tally"] == {str(org.carol): 1}

        response = await client.post(
            f"{API}/messages/{message_id}/candidate",
            json={"candidate_id": str(org.carol)},
            headers=auth(org.alice),
        )
        assert response.status_code == 200
        assert response.json()["tool"]["proposed_candidate_id"] == str(org.carol)

        response = await client.post(
            f"{API}/messages/{message_id}/candidate",
            json={"candidate_id": str(org.bob)},
            headers=auth(org.bob),
        )
        assert response.status_code == 409
        assert response.json()["error"] == "candidate_conflict"

        for action in ("open_consent", "resolve"):
            response = await client.post(
                f"{API}/messages/{message_id}/advance",
                json={"action": action},
                headers=auth(org.leader),
            )
            assert response.status_code == 200
        assert response.json()["phase"] == "elected"

        response = await client.get(
            f"{API}/decisions", params={"tool_type": "election"}, headers=auth(org.alice)
        )
        assert response.status_code == 200
        [record] = response.json()["items"]
        assert record["elected_member_id"] == str(org.carol)

        response = await client.get(f"{API}/decisions/{record['id']}", headers=auth(org.alice))
        assignment = response.json()["role_assignment"]
        assert assignment["status"] == "pending"
        assert assignment["member_id"] == str(org.carol)


# =============================================================================
# TEST: AUDIT
# =============================================================================


class TestAuditEndpoint:
    """The audit trail is reserved to the organization owner."""

    async def test_owner_reads_trail(self, client: AsyncClient, auth, org):
        message_id = await create_topic(client, auth, org)

        response = await client.get(
            f"{API}/audit", params={"resource_id": message_id}, headers=auth(org.owner)
        )

        assert response.status_code == 200
        [entry] = response.json()["items"]
        assert entry["action"] == "create"
        assert entry["member_id"] == str(org.alice)

    async def test_member_cannot_read_trail(self, client: AsyncClient, auth, org):
        response = await client.get(f"{API}/audit", headers=auth(org.alice))
        assert response.status_code == 403

    async def test_trail_is_paginated(self, client: AsyncClient, auth, org):
        await create_topic(client, auth, org)
        await create_topic(client, auth, org)

        response = await client.get(
            f"{API}/audit",
            params={"action": "create", "page": 2, "page_size": 1},
            headers=auth(org.owner),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["total_pages"] == 2
        assert body["page"] == 2
        assert len(body["items"]) == 1

    async def test_page_size_out_of_range(self, client: AsyncClient, auth, org):
        response = await client.get(
            f"{API}/audit", params={"page_size": 0}, headers=auth(org.owner)
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "query.page_size"
