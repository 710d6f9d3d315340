"""Integration tests for vote endpoints."""

import uuid
from datetime import timedelta

API = "/api/v1"


class TestListVotes:
    async def test_voter_sees_eligible_votes_only(self, client_as, builder) -> None:
        vote = await builder.vote()
        await builder.vote()
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes")

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [str(vote.id)]

    async def test_admin_filters_by_status(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        draft = await builder.vote(status="draft")
        await builder.vote()

        async with client_as(admin) as client:
            response = await client.get(f"{API}/votes", params={"status": "draft"})

        assert [item["id"] for item in response.json()] == [str(draft.id)]


class TestGetVote:
    async def test_detail_with_active_stage(self, client_as, builder, stage_times, wall_now) -> None:
        vote = await builder.vote(**stage_times(2, wall_now))
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Park renewal"
        assert body["active_stage"] == 2

    async def test_draft_hidden_from_voter(self, client_as, builder) -> None:
        vote = await builder.vote(status="draft")
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}")

        assert response.status_code == 404
        assert response.json()["code"] == "vote_not_found"

    async def test_ineligible_voter_forbidden(self, client_as, builder) -> None:
        vote = await builder.vote()
        stranger = await builder.user()

        async with client_as(stranger) as client:
            response = await client.get(f"{API}/votes/{vote.id}")

        assert response.status_code == 403
        assert response.json()["code"] == "voter_not_eligible"

    async def test_unknown_vote(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        async with client_as(admin) as client:
            response = await client.get(f"{API}/votes/{uuid.uuid4()}")
        assert response.status_code == 404


class TestStageStatus:
    async def test_stage1_votable(self, client_as, builder, stage_times, wall_now) -> None:
        vote = await builder.vote(**stage_times(1, wall_now))
        await builder.issue(vote)
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}/stage")

        body = response.json()
        assert response.status_code == 200
        assert (body["active_stage"], body["votable"]) == (1, True)

    async def test_between_stages(self, client_as, builder, wall_now) -> None:
        vote = await builder.vote(
            stage1_start=wall_now - timedelta(days=2),
            stage1_end=wall_now - timedelta(days=1),
            stage2_start=wall_now + timedelta(days=1),
        )
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}/stage")

        assert response.json()["active_stage"] is None
        assert response.json()["votable"] is False


class TestUpdateStatus:
    async def test_admin_closes_vote(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        vote = await builder.vote()

        async with client_as(admin) as client:
            response = await client.post(
                f"{API}/votes/{vote.id}/status", json={"status": "closed", "outcome": "Adopted"}
            )

        assert response.status_code == 200
        assert response.json()["status"] == "closed"
        assert response.json()["outcome"] == "Adopted"
        assert response.json()["active_stage"] is None

    async def test_voter_cannot_change_status(self, client_as, builder) -> None:
        vote = await builder.vote()
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.post(f"{API}/votes/{vote.id}/status", json={"status": "closed"})

        assert response.status_code == 403

    async def test_open_lists_problems(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        vote = await builder.vote(status="draft")

        async with client_as(admin) as client:
            response = await client.post(f"{API}/votes/{vote.id}/status", json={"status": "open"})

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "vote_not_ready"
        assert len(body["errors"]) == 3

    async def test_disallowed_transition(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        vote = await builder.vote()

        async with client_as(admin) as client:
            response = await client.post(f"{API}/votes/{vote.id}/status", json={"status": "draft"})

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_status_transition"

    async def test_unknown_status_rejected_by_schema(self, client_as, builder) -> None:
        admin = await builder.user(role="admin")
        vote = await builder.vote()

        async with client_as(admin) as client:
            response = await client.post(f"{API}/votes/{vote.id}/status", json={"status": "archived"})

        assert response.status_code == 422


class TestStageOptions:
    async def test_options_with_public_questions(self, client_as, builder) -> None:
        vote = await builder.vote()
        issue = await builder.issue(vote, "Bike lanes")
        await builder.quiz(issue, "issue", count=3)
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}/stages/1/options")

        assert response.status_code == 200
        options = response.json()["options"]
        assert [o["title"] for o in options] == ["Bike lanes"]
        assert len(options[0]["questions"]) == 3
        assert options[0]["questions"][0]["choices"] == ["A", "B", "C"]
        assert "correct_answer" not in response.text

    async def test_stage2_empty_before_tally(self, client_as, builder) -> None:
        vote = await builder.vote()
        await builder.approach(vote, await builder.issue(vote))
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}/stages/2/options")

        assert response.status_code == 200
        assert response.json()["options"] == []

    async def test_stage_out_of_range(self, client_as, builder) -> None:
        vote = await builder.vote()
        voter = await builder.eligible_voter(vote)

        async with client_as(voter) as client:
            response = await client.get(f"{API}/votes/{vote.id}/stages/4/options")

        assert response.status_code == 422
