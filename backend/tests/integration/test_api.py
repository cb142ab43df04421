"""API tests for the invoice and payment endpoints."""
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient

from invoicing.api.deps import get_current_user
from invoicing.auth.jwt import JWTAuth, jwt_auth
from invoicing.main import app

TEST_USER_ID = UUID("00000000-0000-4000-8000-000000000001")
WIDGETS = [{"title": "Widget", "qty": 2, "price": 100, "gst": 18, "discount_pct": 0}]


async def _create_invoice(client: AsyncClient, buyer_id, **overrides) -> dict:
    payload = {"invoice_no": f"INV-API-{uuid4().hex[:6]}", "buyer_id": str(buyer_id), "items": WIDGETS}
    payload.update(overrides)
    response = await client.post("/v1/invoices", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_and_fetch_invoice(async_client: AsyncClient, test_buyer) -> None:
    created = await _create_invoice(async_client, test_buyer.id, service_charge=0)

    assert created["total"] == "236.00"
    assert created["balance"] == "236.00"
    assert created["status"] == "Unpaid"
    assert created["received_amount"] == "0.00"
    assert created["buyer"]["name"] == test_buyer.name

    response = await async_client.get(f"/v1/invoices/{created['invoice_no']}")
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]


@pytest.mark.asyncio
async def test_payment_flow_over_http(async_client: AsyncClient, test_buyer) -> None:
    invoice = await _create_invoice(async_client, test_buyer.id)
    invoice_no = invoice["invoice_no"]

    first = await async_client.post("/v1/payments", json={"invoice_no": invoice_no, "amount": "100", "method": "Cash"})
    assert first.status_code == 201, first.text
    assert first.json()["created_by"] == str(TEST_USER_ID)

    partial = (await async_client.get(f"/v1/invoices/{invoice_no}")).json()
    assert partial["status"] == "Partial"
    assert partial["balance"] == "136.00"

    second = await async_client.post("/v1/payments", json={"invoice_no": invoice_no, "amount": 136, "method": "UPI"})
    assert second.status_code == 201

    paid = (await async_client.get(f"/v1/invoices/{invoice_no}")).json()
    assert paid["status"] == "Paid"
    assert paid["balance"] == "0.00"

    listing = await async_client.get(f"/v1/payments/invoice/{invoice_no}")
    assert listing.json()["total"] == 2

    edited = await async_client.put(f"/v1/payments/{first.json()['id']}", json={"reference": "counter receipt 12"})
    assert edited.status_code == 200
    assert edited.json()["reference"] == "counter receipt 12"

    deleted = await async_client.delete(f"/v1/payments/{second.json()['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Payment deleted successfully"

    reopened = (await async_client.get(f"/v1/invoices/{invoice_no}")).json()
    assert reopened["status"] == "Partial"

    records = (await async_client.get("/v1/payments/records")).json()
    assert records["total"] == 1
    assert records["items"][0]["invoice_no"] == invoice_no


@pytest.mark.asyncio
async def test_overpayment_returns_400_with_balance(async_client: AsyncClient, test_buyer) -> None:
    invoice = await _create_invoice(async_client, test_buyer.id)

    response = await async_client.post(
        "/v1/payments", json={"invoice_no": invoice["invoice_no"], "amount": 300, "method": "Cash"}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "BusinessRuleViolation"
    assert body["message"] == "Payment amount exceeds remaining balance (₹236.00)"
    assert body["details"][0]["code"] == "business_rule_violation"
    assert body["request_id"]


@pytest.mark.asyncio
async def test_total_reduction_rejected_over_http(async_client: AsyncClient, test_buyer) -> None:
    invoice = await _create_invoice(async_client, test_buyer.id)
    await async_client.post("/v1/payments", json={"invoice_no": invoice["invoice_no"], "amount": 100, "method": "Cash"})

    response = await async_client.patch(
        f"/v1/invoices/{invoice['invoice_no']}",
        json={"items": [{"title": "Cheap", "qty": 1, "price": 50}]},
    )

    assert response.status_code == 400
    assert "₹100.00 has already been paid" in response.json()["message"]


@pytest.mark.asyncio
async def test_draft_finalize_over_http(async_client: AsyncClient, test_buyer) -> None:
    draft = await _create_invoice(async_client, test_buyer.id, invoice_no=None, status="Draft")
    assert draft["invoice_no"].startswith("DRAFT-")
    assert draft["status"] == "Draft"

    refused = await async_client.post(
        "/v1/payments", json={"invoice_no": draft["invoice_no"], "amount": 10, "method": "Cash"}
    )
    assert refused.status_code == 400

    next_number = (await async_client.get("/v1/invoices/next-number")).json()["invoice_no"]
    finalized = await async_client.post(f"/v1/invoices/{draft['invoice_no']}/finalize")

    assert finalized.status_code == 200
    assert finalized.json()["invoice_no"] == next_number
    assert finalized.json()["status"] == "Unpaid"

    again = await async_client.post(f"/v1/invoices/{next_number}/finalize")
    assert again.status_code == 400
    assert again.json()["message"] == "Only draft invoices can be finalized"


@pytest.mark.asyncio
async def test_not_found_and_conflict_codes(async_client: AsyncClient, test_buyer) -> None:
    missing = await async_client.get("/v1/invoices/INV-MISSING")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Invoice not found"

    missing_payment = await async_client.delete(f"/v1/payments/{uuid4()}")
    assert missing_payment.status_code == 404
    assert missing_payment.json()["message"] == "Payment not found"

    await _create_invoice(async_client, test_buyer.id, invoice_no="INV-TAKEN-1")
    duplicate = await async_client.post(
        "/v1/invoices", json={"invoice_no": "INV-TAKEN-1", "buyer_id": str(test_buyer.id), "items": WIDGETS}
    )
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_request_validation_error(async_client: AsyncClient) -> None:
    response = await async_client.post("/v1/payments", json={"invoice_no": "INV-1", "amount": "lots", "method": "Cash"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "ValidationError"
    assert any(detail["field"].endswith("amount") for detail in body["details"])


@pytest.mark.asyncio
async def test_list_and_summary_endpoints(async_client: AsyncClient, test_buyer) -> None:
    await _create_invoice(async_client, test_buyer.id, payment_method="Cash")
    await _create_invoice(async_client, test_buyer.id, payment_method="UPI")

    listing = await async_client.get("/v1/invoices", params={"payment_method": ["UPI"]})
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    summary = (await async_client.get("/v1/invoices/summary")).json()
    assert summary["count"] == 2
    assert summary["total_sales"] == "472.00"
    assert summary["total_balance"] == "472.00"


@pytest.mark.asyncio
async def test_mutations_require_authentication(async_client: AsyncClient, test_buyer) -> None:
    app.dependency_overrides.pop(get_current_user)

    anonymous = await async_client.post(
        "/v1/invoices", json={"invoice_no": "INV-ANON", "buyer_id": str(test_buyer.id), "items": WIDGETS}
    )
    assert anonymous.status_code == 401

    token = jwt_auth.create_access_token(TEST_USER_ID, "tester@example.com")
    authenticated = await async_client.post(
        "/v1/invoices",
        json={"invoice_no": "INV-AUTH", "buyer_id": str(test_buyer.id), "items": WIDGETS},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert authenticated.status_code == 201

    forged = JWTAuth(secret_key="not-the-service-secret").create_access_token(TEST_USER_ID)
    rejected = await async_client.post(
        "/v1/payments",
        json={"invoice_no": "INV-AUTH", "amount": 1, "method": "Cash"},
        headers={"Authorization": f"Bearer {forged}"},
    )
    assert rejected.status_code == 401


@pytest.mark.asyncio
async def test_health_endpoints(async_client: AsyncClient) -> None:
    live = await async_client.get("/health")
    assert live.status_code == 200
    assert live.json()["status"] == "healthy"

    ready = await async_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"] == "connected"


@pytest.mark.asyncio
async def test_out_of_range_amounts_return_client_errors(async_client: AsyncClient, test_buyer) -> None:
    invoice = await _create_invoice(async_client, test_buyer.id)

    payment = await async_client.post(
        "/v1/payments", json={"invoice_no": invoice["invoice_no"], "amount": "1e30", "method": "Cash"}
    )
    assert payment.status_code == 422
    assert any(detail["field"].endswith("amount") for detail in payment.json()["details"])

    created = await async_client.post(
        "/v1/invoices",
        json={
            "invoice_no": "INV-HUGE-1",
            "buyer_id": str(test_buyer.id),
            "items": [{"title": "Huge", "qty": 1, "price": "1e30"}],
        },
    )
    assert created.status_code == 400
    assert created.json()["message"] == "Price is out of range (maximum 9999999999.99)"
    assert created.json()["details"][0]["code"] == "amount_out_of_range"
