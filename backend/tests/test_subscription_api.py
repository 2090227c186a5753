"""
Subscription lifecycle and notification API tests.
"""

from datetime import timedelta

from models import Notification
from timezone_utils import utcnow


class TestRenewal:

    async def test_renew_extends_active_subscription(self, client, make_tenant, fetch):
        tenant = await make_tenant(expires_in=timedelta(days=10))
        before = (await fetch.tenant(tenant.id)).expiry_date

        response = await client.post("/renew", json={"tenantId": tenant.id, "plan": "quarterly"})

        assert response.status_code == 200
        body = response.json()
        assert body["isActive"] is True
        assert body["plan"] == "quarterly"
        after = await fetch.tenant(tenant.id)
        assert after.expiry_date == before + timedelta(days=90)

    async def test_renew_unlocks_expired_tenant(self, client, make_tenant, make_product):
        tenant = await make_tenant(expires_in=timedelta(days=-3))
        product = await make_product(tenant.id, price=3.0)
        line = {"id": product.id, "name": product.name, "price": 3.0, "quantity": 1}

        blocked = await client.post("/transactions", json={"tenantId": tenant.id, "total": 3.0, "items": [line]})
        assert blocked.status_code == 403

        await client.post("/renew", json={"tenantId": tenant.id, "plan": "monthly"})
        status = (await client.get("/subscription/status", params={"tenantId": tenant.id})).json()
        assert status["isActive"] is True
        assert status["daysRemaining"] == 30

        allowed = await client.post("/transactions", json={"tenantId": tenant.id, "total": 3.0, "items": [line]})
        assert allowed.status_code == 201

    async def test_renew_emits_success_notification(self, client, make_tenant, fetch):
        tenant = await make_tenant()

        await client.post("/renew", json={"tenantId": tenant.id, "plan": "annual"})

        notes = await fetch.notifications(tenant.id)
        assert [n.type for n in notes] == ["success"]

    async def test_renew_requires_tenant(self, client):
        assert (await client.post("/renew", json={"plan": "monthly"})).status_code == 400
        assert (await client.post("/renew", json={"tenantId": 4242, "plan": "monthly"})).status_code == 404

    async def test_unknown_plan_is_400(self, client, make_tenant):
        tenant = await make_tenant()
        response = await client.post("/renew", json={"tenantId": tenant.id, "plan": "weekly"})
        assert response.status_code == 400


class TestSubscriptionPayments:

    async def test_approve_applies_renewal_once(self, client, make_tenant, fetch):
        tenant = await make_tenant(expires_in=timedelta(days=2))
        before = (await fetch.tenant(tenant.id)).expiry_date

        paid = await client.post("/subscription/pay", json={"tenantId": tenant.id, "plan": "monthly", "amount": 2000})
        assert paid.status_code == 201
        payment_id = paid.json()["id"]
        assert paid.json()["status"] == "pending"

        approved = await client.post("/admin/subscriptions/approve", json={"paymentId": payment_id})
        assert approved.status_code == 200
        assert approved.json()["status"] == "completed"
        assert (await fetch.tenant(tenant.id)).expiry_date == before + timedelta(days=30)

        again = await client.post("/admin/subscriptions/approve", json={"paymentId": payment_id})
        assert again.status_code == 400
        assert (await fetch.tenant(tenant.id)).expiry_date == before + timedelta(days=30)

    async def test_reject_is_terminal(self, client, make_tenant, fetch):
        tenant = await make_tenant(expires_in=timedelta(days=2))
        before = (await fetch.tenant(tenant.id)).expiry_date
        payment_id = (await client.post(
            "/subscription/pay", json={"tenantId": tenant.id, "plan": "annual", "amount": 18360}
        )).json()["id"]

        rejected = await client.post("/admin/subscriptions/reject", json={"paymentId": payment_id})
        assert rejected.json()["status"] == "rejected"

        approve_after = await client.post("/admin/subscriptions/approve", json={"paymentId": payment_id})
        assert approve_after.status_code == 400
        assert (await fetch.tenant(tenant.id)).expiry_date == before

    async def test_unknown_payment_is_404(self, client):
        response = await client.post("/admin/subscriptions/approve", json={"paymentId": 999})
        assert response.status_code == 404
        assert response.json()["detail"] == "Payment not found"

    async def test_payment_submission_broadcasts_to_admin(self, client, make_tenant, fetch):
        tenant = await make_tenant(name="Bean There")

        await client.post("/subscription/pay", json={"tenantId": tenant.id, "plan": "monthly", "amount": 2000})

        broadcasts = await fetch.notifications(None)
        assert len(broadcasts) == 1
        assert broadcasts[0].type == "info"
        assert "Bean There" in broadcasts[0].message

        listed = await client.get("/admin/notifications")
        assert [n["tenantId"] for n in listed.json()] == [None]

    async def test_list_filters_by_status(self, client, make_tenant):
        tenant = await make_tenant()
        first = (await client.post("/subscription/pay", json={"tenantId": tenant.id, "plan": "monthly", "amount": 1})).json()
        await client.post("/subscription/pay", json={"tenantId": tenant.id, "plan": "monthly", "amount": 2})
        await client.post("/admin/subscriptions/approve", json={"paymentId": first["id"]})

        pending = await client.get("/admin/subscriptions", params={"status": "pending"})
        assert [p["amount"] for p in pending.json()] == [2]


class TestRegistration:

    async def test_approval_creates_active_tenant(self, client, fetch):
        registered = await client.post("/register", json={
            "name": "Fresh Bakes", "email": "owner@freshbakes.example", "plan": "quarterly", "amount": 5400
        })
        assert registered.status_code == 201
        assert registered.json()["tenantId"] is None

        approved = await client.post("/admin/registrations/approve", json={"paymentId": registered.json()["id"]})
        assert approved.status_code == 200
        tenant_id = approved.json()["tenantId"]

        tenant = await fetch.tenant(tenant_id)
        assert tenant.name == "Fresh Bakes"
        assert tenant.plan == "quarterly"
        remaining = tenant.expiry_date - utcnow()
        assert timedelta(days=89) < remaining <= timedelta(days=90)

        status = (await client.get("/subscription/status", params={"tenantId": tenant_id})).json()
        assert status["daysRemaining"] == 90

    async def test_rejected_registration_creates_nothing(self, client):
        registered = (await client.post("/register", json={
            "name": "Nope Shop", "email": "nope@example.com", "plan": "monthly", "amount": 2000
        })).json()

        rejected = await client.post("/admin/registrations/reject", json={"paymentId": registered["id"]})
        assert rejected.json()["status"] == "rejected"
        assert rejected.json()["tenantId"] is None

        twice = await client.post("/admin/registrations/reject", json={"paymentId": registered["id"]})
        assert twice.status_code == 400

    async def test_invalid_email_is_400(self, client):
        response = await client.post("/register", json={
            "name": "Bad", "email": "not-an-email", "plan": "monthly", "amount": 1
        })
        assert response.status_code == 400


class TestNotificationsApi:

    async def test_latest_twenty_newest_first(self, client, store, make_tenant):
        tenant = await make_tenant()
        base = utcnow() - timedelta(hours=30)
        async with store.session() as db:
            for i in range(25):
                db.add(Notification(
                    tenant_id=tenant.id,
                    message=f"Note {i}",
                    type="info",
                    created_at=base + timedelta(minutes=i),
                    dedup_key=f"test-{i}"
                ))
            await db.commit()

        response = await client.get("/notifications", params={"tenantId": tenant.id})

        messages = [n["message"] for n in response.json()]
        assert len(messages) == 20
        assert messages[0] == "Note 24"
        assert messages[-1] == "Note 5"

    async def test_mark_all_read(self, client, make_tenant, fetch):
        tenant = await make_tenant()
        other = await make_tenant(name="Other")
        await client.post("/renew", json={"tenantId": tenant.id, "plan": "monthly"})
        await client.post("/renew", json={"tenantId": other.id, "plan": "monthly"})

        unread = await client.get("/notifications/unread-count", params={"tenantId": tenant.id})
        assert unread.json()["unread"] == 1

        response = await client.post("/notifications/read", json={"tenantId": tenant.id})
        assert response.json()["updated"] == 1

        assert all(n.is_read for n in await fetch.notifications(tenant.id))
        assert not any(n.is_read for n in await fetch.notifications(other.id))

    async def test_notifications_require_tenant(self, client):
        assert (await client.get("/notifications")).status_code == 400
        assert (await client.post("/notifications/read", json={})).status_code == 400
