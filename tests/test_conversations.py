import pytest
from sqlalchemy import select

from app.models.outbox import OutboxEvent
from fixtures_seed import create_won_listing


@pytest.mark.asyncio
async def test_only_parties_open_the_thread_once(client, db_session, seed_users):
    listing = await create_won_listing(db_session, seed_users)
    url = f"/v1/listings/{listing.id}/conversation"

    r = await client.post(url, headers=seed_users["rival"]["headers"])
    assert r.status_code == 403

    r = await client.post(url, headers=seed_users["creator"]["headers"])
    assert r.status_code == 200, r.text
    conversation_id = r.json()["id"]
    assert r.json()["winner_id"] == seed_users["bidder"]["user_id"]

    r = await client.post(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200
    assert r.json()["id"] == conversation_id

    r = await client.get(url, headers=seed_users["bidder"]["headers"])
    assert r.status_code == 200
    assert r.json()["id"] == conversation_id


@pytest.mark.asyncio
async def test_no_thread_before_a_winner(client, seed_users, active_listing):
    r = await client.post(f"/v1/listings/{active_listing.id}/conversation", headers=seed_users["creator"]["headers"])
    assert r.status_code == 400

    r = await client.get(f"/v1/listings/{active_listing.id}/conversation", headers=seed_users["creator"]["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_messages_flow_and_unread_counts(client, db_session, seed_users):
    listing = await create_won_listing(db_session, seed_users)
    creator = seed_users["creator"]["headers"]
    bidder = seed_users["bidder"]["headers"]

    r = await client.post(f"/v1/listings/{listing.id}/conversation", headers=creator)
    conversation_id = r.json()["id"]

    r = await client.post(f"/v1/conversations/{conversation_id}/messages", headers=bidder, json={"content": "  Which cat?  "})
    assert r.status_code == 201, r.text
    assert r.json()["content"] == "Which cat?"
    assert r.json()["receiver_id"] == seed_users["creator"]["user_id"]

    r = await client.get("/v1/conversations", headers=creator)
    assert r.status_code == 200
    [summary] = r.json()
    assert summary["listing_title"] == listing.title
    assert summary["other_user"]["id"] == seed_users["bidder"]["user_id"]
    assert summary["other_user"]["phone"] is None
    assert summary["unread_count"] == 1
    assert summary["last_message"]["content"] == "Which cat?"
    assert summary["last_message"]["is_from_me"] is False

    r = await client.get(f"/v1/conversations/{conversation_id}", headers=creator)
    assert r.status_code == 200
    thread = r.json()
    assert [m["sender_id"] for m in thread["messages"]] == [
        seed_users["creator"]["user_id"],
        seed_users["bidder"]["user_id"],
    ]
    assert thread["messages"][1]["read"] is True

    r = await client.get("/v1/conversations", headers=creator)
    assert r.json()[0]["unread_count"] == 0

    # the greeting is still unread for the winner
    r = await client.get("/v1/conversations", headers=bidder)
    assert r.json()[0]["unread_count"] == 1

    events = (await db_session.execute(
        select(OutboxEvent).where(OutboxEvent.event_type == "message.sent")
    )).scalars().all()
    assert len(events) == 1
    assert events[0].payload["receiver_id"] == seed_users["creator"]["user_id"]


@pytest.mark.asyncio
async def test_message_rules(client, db_session, seed_users):
    listing = await create_won_listing(db_session, seed_users)
    r = await client.post(f"/v1/listings/{listing.id}/conversation", headers=seed_users["creator"]["headers"])
    conversation_id = r.json()["id"]
    url = f"/v1/conversations/{conversation_id}/messages"

    r = await client.post(url, headers=seed_users["bidder"]["headers"], json={"content": "   "})
    assert r.status_code == 422

    r = await client.post(url, headers=seed_users["rival"]["headers"], json={"content": "hello"})
    assert r.status_code == 403

    r = await client.get(f"/v1/conversations/{conversation_id}", headers=seed_users["rival"]["headers"])
    assert r.status_code == 403

    r = await client.get("/v1/conversations/cnv_missing", headers=seed_users["bidder"]["headers"])
    assert r.status_code == 404
