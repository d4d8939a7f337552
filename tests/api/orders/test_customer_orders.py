from decimal import Decimal
from models.enums import OrderStatus
from models.order_status_history import OrderStatusHistory
from tests.conftest import auth_header, order_payload


async def test_place_order(client, customer, material, design_file):
    response = await client.post("/orders", json=order_payload(material, design_file),
                                 headers=auth_header(customer))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["status_label"] == "Pending Payment"
    assert data["allowed_transitions"] == ["confirmation_pending"]
    assert Decimal(data["subtotal"]) == Decimal("25.00")
    assert Decimal(data["total_amount"]) == Decimal("30.00")
    assert data["items"][0]["material_name"] == "Birch Plywood"
    assert data["customer_email"] == customer.email


async def test_place_order_with_wrong_total(client, customer, material, design_file):
    payload = order_payload(material, design_file)
    payload["total_amount"] = "999.00"

    response = await client.post("/orders", json=payload, headers=auth_header(customer))

    assert response.status_code == 400


async def test_place_order_without_items(client, customer, material, design_file):
    payload = order_payload(material, design_file)
    payload["items"] = []

    response = await client.post("/orders", json=payload, headers=auth_header(customer))

    assert response.status_code == 422


async def test_staff_cannot_place_orders(client, admin, material, design_file):
    response = await client.post("/orders", json=order_payload(material, design_file),
                                 headers=auth_header(admin))

    assert response.status_code == 403


async def test_list_my_orders(client, customer, other_customer, pending_order):
    response = await client.get("/orders", headers=auth_header(customer))

    assert response.status_code == 200
    assert [o["id"] for o in response.json()] == [pending_order.id]

    response = await client.get("/orders", headers=auth_header(other_customer))
    assert response.json() == []


async def test_get_my_order_details(client, customer, pending_order):
    response = await client.get(f"/orders/{pending_order.id}", headers=auth_header(customer))

    assert response.status_code == 200
    data = response.json()
    assert data["order_number"] == pending_order.order_number
    assert data["status_history"] == []
    assert data["payment_proof_url"] is None
    assert "/files/download?token=" in data["items"][0]["design_file_url"]


async def test_other_customers_order_is_not_found(client, other_customer, pending_order):
    response = await client.get(f"/orders/{pending_order.id}", headers=auth_header(other_customer))

    assert response.status_code == 404


async def test_upload_payment_proof(client, session, customer, pending_order):
    response = await client.post(
        f"/orders/{pending_order.id}/payment-proof",
        files={"file": ("receipt.png", b"\x89PNG transfer receipt", "image/png")},
        headers=auth_header(customer)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmation_pending"
    assert data["status_label"] == "Awaiting Confirmation"
    assert data["payment_proof_file_id"] is not None
    assert data["payment_proof_uploaded_at"] is not None
    assert data["allowed_transitions"] == []

    history = session.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == pending_order.id).all()
    assert len(history) == 1
    assert history[0].changed_by == customer.id


async def test_payment_proof_twice_is_conflict(client, customer, submitted_order, storage_dir):
    files_before = list(storage_dir.rglob("*"))

    response = await client.post(
        f"/orders/{submitted_order.id}/payment-proof",
        files={"file": ("again.png", b"\x89PNG", "image/png")},
        headers=auth_header(customer)
    )

    assert response.status_code == 409
    # refused before anything was stored
    assert list(storage_dir.rglob("*")) == files_before


async def test_payment_proof_for_other_customers_order(client, other_customer, pending_order):
    response = await client.post(
        f"/orders/{pending_order.id}/payment-proof",
        files={"file": ("receipt.png", b"\x89PNG", "image/png")},
        headers=auth_header(other_customer)
    )

    assert response.status_code == 404


async def test_empty_payment_proof(client, customer, pending_order):
    response = await client.post(
        f"/orders/{pending_order.id}/payment-proof",
        files={"file": ("receipt.png", b"", "image/png")},
        headers=auth_header(customer)
    )

    assert response.status_code == 400
