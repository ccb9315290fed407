import pytest
from sqlalchemy import select

from app.models.outbox import OutboxEvent
from app.services.notifications import build_notifications
from app.services.outbox_dispatcher import dispatch_outbox, process_outbox_event


def test_bid_placed_notifies_creator_and_outbid_bidder():
    notes = build_notifications(
        "bid.placed",
        {
            "listing_id": "lst_1",
            "title": "Cat serenade",
            "creator_id": "usr_creator",
            "bidder_id": "usr_new",
            "amount": 6000,
            "previous_bidder_id": "usr_old",
        },
        source_event_id="obx_1",
    )
    assert [(n.recipient_id, n.kind) for n in notes] == [("usr_creator", "bid_received"), ("usr_old", "outbid")]
    assert notes[0].link == "/vibes/lst_1"
    assert "NGN 6,000" in notes[0].message
    assert all(n.source_event_id == "obx_1" for n in notes)


def test_raising_own_bid_is_not_an_outbid():
    notes = build_notifications(
        "bid.placed",
        {"listing_id": "lst_1", "creator_id": "usr_c", "bidder_id": "usr_b", "previous_bidder_id": "usr_b", "amount": 1},
    )
    assert [n.kind for n in notes] == ["bid_received"]


def test_unrelated_events_build_nothing():
    assert build_notifications("payout.requested", {"user_id": "usr_1", "amount": 1000}) == []


@pytest.mark.asyncio
async def test_outbox_events_become_notifications(client, db_session, seed_users, active_listing):
    url = f"/v1/listings/{active_listing.id}/bids"
    await client.post(url, headers=seed_users["bidder"]["headers"], json={"amount": 5500})
    await client.post(url, headers=seed_users["rival"]["headers"], json={"amount": 6000})

    claimed: list[tuple[str, str]] = []
    dispatched = await dispatch_outbox(db_session, enqueue=lambda oid, lease: claimed.append((oid, lease)))
    assert dispatched == len(claimed) == 2

    for outbox_id, lease_id in claimed:
        assert await process_outbox_event(db_session, outbox_id=outbox_id, lease_id=lease_id) is True
        # replay with a stale lease is ignored
        assert await process_outbox_event(db_session, outbox_id=outbox_id, lease_id=lease_id) is False

    statuses = (await db_session.execute(
        select(OutboxEvent.status).execution_options(populate_existing=True)
    )).scalars().all()
    assert set(statuses) == {"done"}

    r = await client.get("/v1/notifications", headers=seed_users["creator"]["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["unread_count"] == 2
    assert {n["kind"] for n in r.json()["notifications"]} == {"bid_received"}

    r = await client.get("/v1/notifications", headers=seed_users["bidder"]["headers"])
    assert [n["kind"] for n in r.json()["notifications"]] == ["outbid"]

    r = await client.post("/v1/notifications/read", headers=seed_users["creator"]["headers"])
    assert r.status_code == 200
    r = await client.get("/v1/notifications", headers=seed_users["creator"]["headers"])
    assert r.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_failed_enqueue_returns_event_to_pending(client, db_session, seed_users, active_listing):
    await client.post(
        f"/v1/listings/{active_listing.id}/bids",
        headers=seed_users["bidder"]["headers"],
        json={"amount": 5500},
    )

    def broken(outbox_id, lease_id):
        raise ConnectionError("broker down")

    assert await dispatch_outbox(db_session, enqueue=broken) == 0

    ev = (await db_session.execute(
        select(OutboxEvent).where(OutboxEvent.event_type == "bid.placed").execution_options(populate_existing=True)
    )).scalar_one()
    assert ev.status == "pending"
    assert ev.lease_id is None
    assert "broker down" in ev.last_error


def test_message_notifies_the_receiver_only():
    notes = build_notifications(
        "message.sent",
        {"listing_id": "lst_1", "title": "Cat serenade", "sender_id": "usr_a", "receiver_id": "usr_b", "conversation_id": "cnv_1"},
    )
    assert [(n.recipient_id, n.kind) for n in notes] == [("usr_b", "message")]
