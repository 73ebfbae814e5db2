import asyncio
import uuid

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from models import Order, Listing
from routers.orders.helpers import source_states
from routers.orders.schemas import OrderStatus


def order_body(listing, **overrides):
    body = {"listing_id": str(listing.id), "quantity": 2, "contact_method": "pickup"}
    body.update(overrides)
    return body


async def place_order(client, market, **overrides):
    response = await client.post(
        "/orders/create",
        json=order_body(market.listing, **overrides),
        headers=market.buyer.headers
    )
    assert response.status_code == 200, response.text
    return response.json()["order_id"]


async def get_order(session_factory, order_id):
    async with session_factory() as session:
        return await session.get(Order, uuid.UUID(order_id))


async def count_orders(session_factory, buyer, listing, status=None):
    query = select(func.count(Order.id)).where(Order.buyer_id == buyer.id, Order.listing_id == listing.id)
    if status:
        query = query.where(Order.status == status)
    async with session_factory() as session:
        return (await session.execute(query)).scalar_one()


@pytest.mark.asyncio
async def test_create_order_snapshots_listing_and_notifies_both_parties(
    client, marketplace, session_factory, notifications_for
):
    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing, buyer_message="Need them by 6pm"),
        headers=marketplace.buyer.headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True

    order = await get_order(session_factory, data["order_id"])
    assert order.status == "pending"
    assert order.price_per_unit == 2500
    assert order.total_amount == 5000
    assert order.unit == "kg"
    assert order.seller_id == marketplace.seller.id
    assert order.master_item_id == marketplace.master_item.id
    assert order.buyer_phone == marketplace.buyer.phone
    assert order.buyer_name == "Asha Patel"

    seller_notifications = await notifications_for(marketplace.seller)
    assert len(seller_notifications) == 1
    seller_note = seller_notifications[0]
    assert seller_note.type == "order_placed"
    assert seller_note.priority == "high"
    assert seller_note.title == "🛒 New Order Received!"
    assert seller_note.message == "Someone wants to buy 2 kg of Onion. Please review and respond."
    assert seller_note.sender_id == marketplace.buyer.id
    assert seller_note.related_id == data["order_id"]
    assert seller_note.related_type == "order"
    assert seller_note.action_url == "/profile/orders"

    buyer_notifications = await notifications_for(marketplace.buyer)
    assert len(buyer_notifications) == 1
    assert buyer_notifications[0].priority == "medium"
    assert buyer_notifications[0].title == "📦 Order Placed Successfully!"
    assert "2 kg of Onion" in buyer_notifications[0].message


@pytest.mark.asyncio
async def test_order_price_is_not_affected_by_later_listing_changes(client, marketplace, session_factory):
    order_id = await place_order(client, marketplace, quantity=3)

    async with session_factory() as session:
        listing = await session.get(Listing, marketplace.listing.id)
        listing.price = 4000
        await session.commit()

    order = await get_order(session_factory, order_id)
    assert order.price_per_unit == 2500
    assert order.total_amount == 7500


@pytest.mark.asyncio
async def test_create_order_does_not_reserve_stock(client, marketplace, session_factory):
    await place_order(client, marketplace, quantity=10)

    async with session_factory() as session:
        listing = await session.get(Listing, marketplace.listing.id)
    assert listing.quantity == 10


@pytest.mark.asyncio
async def test_second_pending_order_for_same_listing_is_rejected(client, marketplace, session_factory):
    await place_order(client, marketplace)

    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing, quantity=1),
        headers=marketplace.buyer.headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "You already have a pending order for this listing"
    assert await count_orders(session_factory, marketplace.buyer, marketplace.listing) == 1


@pytest.mark.asyncio
async def test_buyer_can_order_again_once_previous_order_is_settled(client, marketplace, session_factory):
    order_id = await place_order(client, marketplace)
    response = await client.post(
        f"/orders/{order_id}/respond",
        json={"status": "rejected", "rejection_reason": "Out of stock"},
        headers=marketplace.seller.headers
    )
    assert response.status_code == 200

    await place_order(client, marketplace)

    assert await count_orders(session_factory, marketplace.buyer, marketplace.listing) == 2
    assert await count_orders(session_factory, marketplace.buyer, marketplace.listing, "pending") == 1


@pytest.mark.asyncio
async def test_database_rejects_two_pending_orders_for_same_buyer_and_listing(marketplace, session_factory):
    def pending_order():
        return Order(
            listing_id=marketplace.listing.id,
            buyer_id=marketplace.buyer.id,
            seller_id=marketplace.seller.id,
            master_item_id=marketplace.master_item.id,
            quantity=1,
            unit="kg",
            price_per_unit=2500,
            total_amount=2500,
            contact_method="pickup",
            status="pending"
        )

    async with session_factory() as session:
        session.add(pending_order())
        await session.commit()

        session.add(pending_order())
        with pytest.raises(IntegrityError):
            await session.commit()


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, detail", [
    ({"quantity": 0}, "Invalid quantity requested"),
    ({"quantity": -1}, "Invalid quantity requested"),
    ({"quantity": 11}, "Invalid quantity requested"),
    ({"contact_method": "delivery"}, "Please provide a delivery address"),
    ({"contact_method": "delivery", "delivery_address": "   "}, "Please provide a delivery address"),
])
async def test_create_order_validation(client, marketplace, session_factory, overrides, detail):
    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing, **overrides),
        headers=marketplace.buyer.headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == detail
    assert await count_orders(session_factory, marketplace.buyer, marketplace.listing) == 0


@pytest.mark.asyncio
async def test_delivery_order_keeps_address(client, marketplace, session_factory):
    order_id = await place_order(
        client, marketplace, contact_method="delivery", delivery_address="  45 FC Road, Pune "
    )

    order = await get_order(session_factory, order_id)
    assert order.contact_method == "delivery"
    assert order.delivery_address == "45 FC Road, Pune"


@pytest.mark.asyncio
async def test_phone_is_required_from_request_or_profile(client, marketplace, make_profile, session_factory):
    buyer = await make_profile("No Phone", phone=None)

    response = await client.post("/orders/create", json=order_body(marketplace.listing), headers=buyer.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Please provide your phone number"

    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing, buyer_phone="9000000001"),
        headers=buyer.headers
    )
    assert response.status_code == 200
    order = await get_order(session_factory, response.json()["order_id"])
    assert order.buyer_phone == "9000000001"


@pytest.mark.asyncio
async def test_cannot_order_from_own_listing(client, marketplace):
    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing),
        headers=marketplace.seller.headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "You cannot order from your own listing"


@pytest.mark.asyncio
async def test_cannot_order_from_inactive_or_missing_listing(client, marketplace, make_listing):
    inactive = await make_listing(marketplace.seller, marketplace.master_item, is_active=False)

    response = await client.post("/orders/create", json=order_body(inactive), headers=marketplace.buyer.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Listing is no longer active"

    response = await client.post(
        "/orders/create",
        json={"listing_id": str(uuid.uuid4()), "quantity": 1, "contact_method": "pickup"},
        headers=marketplace.buyer.headers
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Listing not found"


@pytest.mark.asyncio
async def test_create_order_requires_authentication_and_profile(client, marketplace, headers_for):
    response = await client.post("/orders/create", json=order_body(marketplace.listing))
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"

    response = await client.post(
        "/orders/create",
        json=order_body(marketplace.listing),
        headers=headers_for(uuid.uuid4())
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Buyer not found"


@pytest.mark.asyncio
async def test_seller_rejection_notifies_buyer_with_reason(client, marketplace, session_factory, notifications_for):
    order_id = await place_order(client, marketplace)

    response = await client.post(
        f"/orders/{order_id}/respond",
        json={"status": "rejected", "rejection_reason": "Out of stock"},
        headers=marketplace.seller.headers
    )

    assert response.status_code == 200
    order = await get_order(session_factory, order_id)
    assert order.status == "rejected"
    assert order.rejection_reason == "Out of stock"
    assert order.responded_at is not None

    latest = (await notifications_for(marketplace.buyer))[-1]
    assert latest.type == "order_rejected"
    assert latest.priority == "high"
    assert latest.title == "❌ Order Declined"
    assert 'Reason: "Out of stock"' in latest.message
    assert latest.sender_id == marketplace.seller.id


@pytest.mark.asyncio
async def test_seller_acceptance_quotes_seller_message(client, marketplace, session_factory, notifications_for):
    order_id = await place_order(client, marketplace)

    response = await client.post(
        f"/orders/{order_id}/respond",
        json={
            "status": "accepted",
            "seller_response": "Pick up after 7pm",
            "rejection_reason": "ignored when accepting"
        },
        headers=marketplace.seller.headers
    )

    assert response.status_code == 200
    order = await get_order(session_factory, order_id)
    assert order.status == "accepted"
    assert order.seller_response == "Pick up after 7pm"
    assert order.rejection_reason is None

    latest = (await notifications_for(marketplace.buyer))[-1]
    assert latest.type == "order_accepted"
    assert latest.title == "✅ Order Accepted!"
    assert latest.message == (
        'Great news! The seller has accepted your order for Onion. Message: "Pick up after 7pm"'
    )


@pytest.mark.asyncio
async def test_only_seller_can_respond_and_only_once(client, marketplace):
    order_id = await place_order(client, marketplace)

    response = await client.post(
        f"/orders/{order_id}/respond",
        json={"status": "accepted"},
        headers=marketplace.buyer.headers
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized: You can only respond to your own orders"

    response = await client.post(
        f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=marketplace.seller.headers
    )
    assert response.status_code == 200

    response = await client.post(
        f"/orders/{order_id}/respond", json={"status": "rejected"}, headers=marketplace.seller.headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Order has already been responded to"


@pytest.mark.asyncio
async def test_complete_requires_accepted_order(client, marketplace, session_factory):
    order_id = await place_order(client, marketplace)

    response = await client.post(f"/orders/{order_id}/complete", json={}, headers=marketplace.seller.headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Order must be accepted before it can be completed"
    assert (await get_order(session_factory, order_id)).status == "pending"


@pytest.mark.asyncio
async def test_buyer_completes_accepted_order_and_seller_is_notified(
    client, marketplace, session_factory, notifications_for
):
    order_id = await place_order(client, marketplace)
    await client.post(f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=marketplace.seller.headers)

    response = await client.post(
        f"/orders/{order_id}/complete",
        json={"completion_notes": "Collected, thanks"},
        headers=marketplace.buyer.headers
    )

    assert response.status_code == 200
    order = await get_order(session_factory, order_id)
    assert order.status == "completed"
    assert order.completed_at is not None
    assert order.completion_notes == "Collected, thanks"

    latest = (await notifications_for(marketplace.seller))[-1]
    assert latest.type == "order_completed"
    assert latest.priority == "medium"
    assert latest.title == "✅ Order Completed!"
    assert latest.message == 'The order for Onion has been marked as completed. Notes: "Collected, thanks"'
    assert latest.sender_id == marketplace.buyer.id


@pytest.mark.asyncio
async def test_buyer_cancels_pending_order(client, marketplace, session_factory, notifications_for):
    order_id = await place_order(client, marketplace)

    response = await client.post(
        f"/orders/{order_id}/cancel",
        json={"reason": "Found it cheaper"},
        headers=marketplace.buyer.headers
    )

    assert response.status_code == 200
    order = await get_order(session_factory, order_id)
    assert order.status == "cancelled"
    assert order.rejection_reason == "Found it cheaper"

    latest = (await notifications_for(marketplace.seller))[-1]
    assert latest.type == "order_rejected"
    assert latest.title == "❌ Order Cancelled"
    assert latest.message == 'The buyer has cancelled the order for Onion. Reason: "Found it cheaper"'


@pytest.mark.asyncio
async def test_seller_cancels_accepted_order(client, marketplace, session_factory, notifications_for):
    order_id = await place_order(client, marketplace)
    await client.post(f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=marketplace.seller.headers)

    response = await client.post(f"/orders/{order_id}/cancel", json={}, headers=marketplace.seller.headers)

    assert response.status_code == 200
    assert (await get_order(session_factory, order_id)).status == "cancelled"
    latest = (await notifications_for(marketplace.buyer))[-1]
    assert latest.message == "The seller has cancelled the order for Onion."


@pytest.mark.asyncio
@pytest.mark.parametrize("settle", ["rejected", "completed", "cancelled"])
async def test_settled_orders_cannot_be_cancelled(client, marketplace, session_factory, settle):
    order_id = await place_order(client, marketplace)
    seller_headers = marketplace.seller.headers

    if settle == "rejected":
        await client.post(f"/orders/{order_id}/respond", json={"status": "rejected"}, headers=seller_headers)
    elif settle == "completed":
        await client.post(f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=seller_headers)
        await client.post(f"/orders/{order_id}/complete", json={}, headers=seller_headers)
    else:
        await client.post(f"/orders/{order_id}/cancel", json={}, headers=seller_headers)

    response = await client.post(f"/orders/{order_id}/cancel", json={}, headers=marketplace.buyer.headers)

    assert response.status_code == 400
    assert response.json()["detail"] == f"Cannot cancel {settle} orders"
    assert (await get_order(session_factory, order_id)).status == settle


@pytest.mark.asyncio
async def test_concurrent_responses_apply_only_once(client, marketplace, session_factory, notifications_for):
    order_id = await place_order(client, marketplace)

    responses = await asyncio.gather(*[
        client.post(f"/orders/{order_id}/respond", json={"status": decision}, headers=marketplace.seller.headers)
        for decision in ("accepted", "rejected")
    ])

    assert sorted(response.status_code for response in responses) == [200, 400]
    winner = next(decision for decision, response in zip(("accepted", "rejected"), responses)
                  if response.status_code == 200)
    loser = next(response for response in responses if response.status_code == 400)
    assert loser.json()["detail"] == "Order has already been responded to"
    assert (await get_order(session_factory, order_id)).status == winner

    buyer_types = [notification.type for notification in await notifications_for(marketplace.buyer)]
    assert buyer_types == ["order_placed", f"order_{winner}"]


@pytest.mark.asyncio
async def test_concurrent_complete_and_cancel_leave_one_outcome(
    client, marketplace, session_factory, notifications_for
):
    order_id = await place_order(client, marketplace)
    await client.post(f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=marketplace.seller.headers)

    complete, cancel = await asyncio.gather(
        client.post(f"/orders/{order_id}/complete", json={}, headers=marketplace.buyer.headers),
        client.post(f"/orders/{order_id}/cancel", json={}, headers=marketplace.seller.headers)
    )

    assert sorted([complete.status_code, cancel.status_code]) == [200, 400]
    order = await get_order(session_factory, order_id)
    if complete.status_code == 200:
        assert order.status == "completed"
        assert cancel.json()["detail"] == "Cannot cancel completed orders"
    else:
        assert order.status == "cancelled"
        assert complete.json()["detail"] == "Order must be accepted before it can be completed"


@pytest.mark.asyncio
@pytest.mark.parametrize("action, body, detail", [
    ("respond", {"status": "accepted"}, "Unauthorized: You can only respond to your own orders"),
    ("complete", {}, "Unauthorized"),
    ("cancel", {}, "Unauthorized"),
])
async def test_outsider_cannot_touch_order(client, marketplace, session_factory, action, body, detail):
    order_id = await place_order(client, marketplace)

    response = await client.post(f"/orders/{order_id}/{action}", json=body, headers=marketplace.outsider.headers)

    assert response.status_code == 403
    assert response.json()["detail"] == detail
    assert (await get_order(session_factory, order_id)).status == "pending"


@pytest.mark.asyncio
@pytest.mark.parametrize("action, body", [
    ("respond", {"status": "accepted"}),
    ("complete", {}),
    ("cancel", {}),
])
async def test_unknown_order_is_not_found(client, marketplace, action, body):
    response = await client.post(f"/orders/{uuid.uuid4()}/{action}", json=body, headers=marketplace.seller.headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "Order not found"


@pytest.mark.asyncio
async def test_my_orders_projects_both_roles(client, marketplace, make_profile, make_listing):
    order_id = await place_order(client, marketplace)

    # The seller also buys from someone else
    other_seller = await make_profile("Meena Joshi", shop_name="Meena Vada Pav")
    other_listing = await make_listing(other_seller, marketplace.master_item, price=1500)
    response = await client.post(
        "/orders/create", json=order_body(other_listing, quantity=1), headers=marketplace.seller.headers
    )
    purchase_id = response.json()["order_id"]

    response = await client.get("/orders/my-orders", headers=marketplace.seller.headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    orders = {order["id"]: order for order in data["orders"]}
    assert [order["id"] for order in data["orders"]] == [purchase_id, order_id]

    sale = orders[order_id]
    assert sale["user_role"] == "seller"
    assert sale["total_amount"] == 5000
    assert sale["listing"] == {
        "id": str(marketplace.listing.id),
        "image_url": "https://cdn.example.com/onions.jpg",
        "description": "Fresh red onions, end of day stock",
        "is_active": True
    }
    assert sale["master_item"]["name"] == "Onion"
    assert sale["master_item"]["category"] == "Vegetable"
    assert sale["buyer"]["name"] == "Asha Patel"
    assert sale["buyer"]["shop_name"] == "Asha Pav Bhaji"
    assert sale["seller"]["shop_address"] == "12 MG Road, Pune"

    assert orders[purchase_id]["user_role"] == "buyer"

    response = await client.get("/orders/my-orders", params={"type": "buyer"}, headers=marketplace.seller.headers)
    assert [order["id"] for order in response.json()["orders"]] == [purchase_id]

    response = await client.get(
        "/orders/my-orders", params={"type": "seller", "status": "accepted"}, headers=marketplace.seller.headers
    )
    assert response.json()["orders"] == []


@pytest.mark.asyncio
async def test_my_orders_tolerates_missing_listing(client, marketplace, session_factory):
    order_id = await place_order(client, marketplace)
    async with session_factory() as session:
        listing = await session.get(Listing, marketplace.listing.id)
        await session.delete(listing)
        await session.commit()

    response = await client.get("/orders/my-orders", headers=marketplace.buyer.headers)

    assert response.status_code == 200
    order = response.json()["orders"][0]
    assert order["id"] == order_id
    assert order["listing"] is None
    assert order["master_item"]["name"] == "Onion"


@pytest.mark.asyncio
async def test_my_orders_requires_profile(client, headers_for):
    response = await client.get("/orders/my-orders", headers=headers_for(uuid.uuid4()))

    assert response.status_code == 404
    assert response.json()["detail"] == "User not found"


@pytest.mark.asyncio
async def test_pending_count(client, marketplace):
    order_id = await place_order(client, marketplace)

    response = await client.get("/orders/pending-count", headers=marketplace.seller.headers)
    assert response.json() == {"pending_count": 1}

    response = await client.get("/orders/pending-count", headers=marketplace.buyer.headers)
    assert response.json() == {"pending_count": 0}

    await client.post(f"/orders/{order_id}/respond", json={"status": "accepted"}, headers=marketplace.seller.headers)
    response = await client.get("/orders/pending-count", headers=marketplace.seller.headers)
    assert response.json() == {"pending_count": 0}


@pytest.mark.asyncio
async def test_pending_count_for_anonymous_caller_is_zero(client):
    response = await client.get("/orders/pending-count")
    assert response.status_code == 200
    assert response.json() == {"pending_count": 0}

    response = await client.get("/orders/pending-count", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


@pytest.mark.asyncio
async def test_failed_notification_does_not_fail_order(
    client, marketplace, session_factory, notifications_for, monkeypatch
):
    def broken_session_factory():
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr("utils.notifications.get_session_factory", broken_session_factory)

    order_id = await place_order(client, marketplace)

    assert (await get_order(session_factory, order_id)).status == "pending"
    assert await notifications_for(marketplace.seller) == []
    assert await notifications_for(marketplace.buyer) == []


@pytest.mark.asyncio
async def test_order_state_machine():
    assert source_states(OrderStatus.ACCEPTED) == {"pending"}
    assert source_states(OrderStatus.REJECTED) == {"pending"}
    assert source_states(OrderStatus.COMPLETED) == {"accepted"}
    assert source_states(OrderStatus.CANCELLED) == {"pending", "accepted"}
    assert source_states(OrderStatus.PENDING) == set()
