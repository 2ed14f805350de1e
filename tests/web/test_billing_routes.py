from datetime import date
from decimal import Decimal


class TestGenerate:
    def test_generate_bill(self, march_bill, customer):
        assert march_bill["billNumber"] == "MDF-202503-00001"
        assert march_bill["userId"] == customer.id
        assert march_bill["totalAmount"] == 12000
        assert march_bill["pendingAmount"] == 12000
        assert march_bill["status"] == "generated"
        assert march_bill["lineItems"][0]["totalQuantity"] == "2"
        assert march_bill["dueDate"] == "2025-04-07T00:00:00"

    def test_generate_twice(self, client, march_bill, customer):
        response = client.post("/api/billing/generate", json={"customerId": customer.id, "month": 3, "year": 2025})
        assert response.status_code == 400
        assert response.json()["reason"] == "AlreadyExists"

    def test_no_activity(self, client, customer):
        response = client.post("/api/billing/generate", json={"customerId": customer.id, "month": 2, "year": 2025})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "reason": "NoBillableActivity",
            "message": response.json()["message"],
        }

    def test_invalid_month(self, client, customer):
        response = client.post("/api/billing/generate", json={"customerId": customer.id, "month": 13, "year": 2025})
        assert response.status_code == 400
        assert response.json()["reason"] == "ValidationError"

    def test_missing_field(self, client):
        response = client.post("/api/billing/generate", json={"month": 3, "year": 2025})
        assert response.status_code == 400
        body = response.json()
        assert body["reason"] == "ValidationError"
        assert "customerId" in body["message"]

    def test_unknown_customer(self, client):
        response = client.post("/api/billing/generate", json={"customerId": 999, "month": 3, "year": 2025})
        assert response.status_code == 404

    def test_generate_all(self, client, repos, customer, milk, sample_customer, sample_delivery):
        repos.users.create(sample_customer(name="Idle"))
        repos.deliveries.create(sample_delivery(customer.id, milk.id, delivery_date=date(2025, 3, 4)))

        response = client.post("/api/billing/generate-all", json={"month": 3, "year": 2025})

        assert response.status_code == 200
        body = response.json()
        assert body["generated"] == 1
        assert body["skipped"] == 1
        assert body["errors"] == []
        assert body["message"] == "Generated 1 bills, skipped 1"


class TestQueries:
    def test_list_and_filter(self, client, march_bill, customer):
        body = client.get("/api/billing", params={"customerId": customer.id}).json()
        assert body["count"] == 1
        assert body["bills"][0]["id"] == march_bill["id"]

        assert client.get("/api/billing", params={"status": "paid"}).json()["count"] == 0

    def test_bad_status_filter(self, client):
        response = client.get("/api/billing", params={"status": "bogus"})
        assert response.status_code == 400

    def test_detail_includes_payments(self, client, march_bill, customer):
        client.post("/api/payments/cash", json={"customerId": customer.id, "amount": 2000, "billId": march_bill["id"]})

        body = client.get(f"/api/billing/{march_bill['id']}").json()

        assert body["bill"]["paidAmount"] == 2000
        [payment] = body["bill"]["payments"]
        assert payment["amount"] == 2000
        assert "gatewaySignature" not in payment

    def test_detail_not_found(self, client):
        response = client.get("/api/billing/999")
        assert response.status_code == 404
        assert response.json()["reason"] == "NotFound"


class TestSendAndPay:
    def test_mark_sent(self, client, march_bill):
        response = client.post(f"/api/billing/{march_bill['id']}/send", headers={"X-Actor-Id": "1"})
        assert response.status_code == 200
        bill = response.json()["bill"]
        assert bill["status"] == "sent"
        assert bill["sentAt"] is not None

    def test_partial_payment_past_due(self, client, march_bill):
        response = client.put(f"/api/billing/{march_bill['id']}/payment", json={"amount": 5000, "method": "upi"})

        assert response.status_code == 200
        bill = response.json()["bill"]
        # the March 2025 bill fell due on 2025-04-07
        assert bill["status"] == "overdue"
        assert bill["pendingAmount"] == 7000
        assert bill["payments"][0]["method"] == "upi"

    def test_full_payment(self, client, march_bill, repos, customer):
        response = client.put(f"/api/billing/{march_bill['id']}/payment", json={"amount": 12000})

        assert response.json()["bill"]["status"] == "paid"
        assert repos.users.get_by_id(customer.id).pending_amount == 0

    def test_zero_amount(self, client, march_bill):
        response = client.put(f"/api/billing/{march_bill['id']}/payment", json={"amount": 0})
        assert response.status_code == 400
        assert response.json()["reason"] == "InvalidAmount"

    def test_reused_transaction_id(self, client, march_bill):
        payload = {"amount": 1000, "method": "upi", "transactionId": "UPI-77"}
        assert client.put(f"/api/billing/{march_bill['id']}/payment", json=payload).status_code == 200

        response = client.put(f"/api/billing/{march_bill['id']}/payment", json=payload)

        assert response.status_code == 409
        assert response.json()["reason"] == "DuplicatePayment"

    def test_bad_actor_header(self, client, march_bill):
        response = client.post(f"/api/billing/{march_bill['id']}/send", headers={"X-Actor-Id": "admin"})
        assert response.status_code == 400
        assert response.json()["message"] == "X-Actor-Id must be an integer"


def test_quantity_serialised_as_string(client, repos, customer, milk, sample_delivery):
    repos.deliveries.create(
        sample_delivery(customer.id, milk.id, quantity=Decimal("1.25"), delivery_date=date(2025, 3, 4))
    )
    bill = client.post("/api/billing/generate", json={"customerId": customer.id, "month": 3, "year": 2025}).json()["bill"]
    assert bill["totalLitres"] == "1.25"
    assert bill["totalAmount"] == 7500
