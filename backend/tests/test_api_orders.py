# tests/test_api_orders.py
# 订单 API 测试

import pytest
from sqlalchemy import select

from app.models.order import OrderItem


async def first_item_id(session, order_id):
    return await session.scalar(
        select(OrderItem.id).where(OrderItem.r_order_id == order_id).order_by(OrderItem.id).limit(1)
    )


class TestOrderStatusAPI:
    """PUT /api/orders/{id}/status"""

    @pytest.mark.asyncio
    async def test_legacy_status(self, admin_client, order_factory):
        order = await order_factory(["processing"], status=9)

        response = await admin_client.put(f"/api/orders/{order.id}/status", json={"status": 1})

        assert response.status_code == 200
        assert response.json()["status"] == 1
        assert response.json()["workflow_status_key"] == "processing"

    @pytest.mark.asyncio
    async def test_workflow_key(self, admin_client, order_factory):
        order = await order_factory(["processing"], status=2)

        response = await admin_client.put(f"/api/orders/{order.id}/status", json={"status_key": "ordered"})

        assert response.status_code == 200
        assert response.json()["workflow_status_key"] == "ordered"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_400(self, admin_client, order_factory):
        order = await order_factory(["refunded"], status=6)

        response = await admin_client.put(f"/api/orders/{order.id}/status", json={"status": 1})

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot transition from Refunded to Confirmed"

    @pytest.mark.asyncio
    async def test_body_needs_exactly_one_field(self, admin_client, order_factory):
        order = await order_factory(["processing"])

        response = await admin_client.put(
            f"/api/orders/{order.id}/status", json={"status": 1, "status_key": "ordered"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_order_is_404(self, admin_client):
        response = await admin_client.put("/api/orders/999/status", json={"status": 1})

        assert response.status_code == 404
        assert response.json() == {"detail": "Order not found"}


class TestOrderListAPI:
    """GET /api/orders 与 GET /api/orders/items"""

    @pytest.mark.asyncio
    async def test_order_list(self, admin_client, order_factory):
        first = await order_factory(["processing", "ordered"], is_paid=True)
        second = await order_factory(["processing"], status=1)

        listed = await admin_client.get("/api/orders")
        paid = await admin_client.get("/api/orders", params={"is_paid": "true"})
        by_status = await admin_client.get("/api/orders", params={"status": 1})

        body = listed.json()
        assert [o["id"] for o in body["orders"]] == [second.id, first.id]
        assert body["orders"][1]["item_count"] == 2
        assert body["pagination"]["totalCount"] == 2
        assert body["stats"]["totalOrders"] == 2
        assert [o["id"] for o in paid.json()["orders"]] == [first.id]
        assert [o["id"] for o in by_status.json()["orders"]] == [second.id]

    @pytest.mark.asyncio
    async def test_order_list_rejects_unknown_sort(self, admin_client):
        response = await admin_client.get("/api/orders", params={"sort_by": "password"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_item_master_list(self, admin_client, order_factory):
        order = await order_factory(["processing", "shipped_to_wh"])

        response = await admin_client.get("/api/orders/items", params={"workflow_status": "shipped_to_wh"})

        body = response.json()
        assert response.status_code == 200
        assert [i["order_id"] for i in body["items"]] == [order.id]
        assert body["items"][0]["workflow_status_label"] == "Shipped to WH"
        assert {s["status_key"] for s in body["statusSummary"]} == {"processing", "shipped_to_wh"}
        assert body["roleKey"] == "super_admin"

    @pytest.mark.asyncio
    async def test_item_master_list_needs_permission(self, login_as, operator):
        response = await login_as(operator).get("/api/orders/items")

        assert response.status_code == 403


class TestOrderDetailAPI:

    @pytest.mark.asyncio
    async def test_detail(self, admin_client, order_factory):
        order = await order_factory(["processing", "ordered"])

        response = await admin_client.get(f"/api/orders/{order.id}")

        body = response.json()
        assert response.status_code == 200
        assert body["order"]["id"] == order.id
        assert len(body["products"]) == 2
        assert body["customer"]["first_name"] == "Rami"

    @pytest.mark.asyncio
    async def test_refund(self, admin_client, order_factory):
        order = await order_factory(["delivered_to_customer"], status=4)

        response = await admin_client.post(f"/api/orders/{order.id}/refund", json={"refund_type": "shipping_only"})
        again = await admin_client.post(f"/api/orders/{order.id}/refund", json={"refund_type": "full"})

        assert response.json()["refund_amount"] == 25.0
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_invoices(self, admin_client, order_factory):
        order = await order_factory(["processing"])

        created = await admin_client.post(f"/api/orders/{order.id}/invoices", json={"type": "product"})
        duplicate = await admin_client.post(f"/api/orders/{order.id}/invoices", json={"type": "product"})
        listed = await admin_client.get(f"/api/orders/{order.id}/invoices")

        assert created.status_code == 201
        assert created.json()["invoice"]["invoice_number"] == "INV-00000001"
        assert duplicate.status_code == 409
        assert len(listed.json()["invoices"]) == 1

    @pytest.mark.asyncio
    async def test_update_item(self, admin_client, order_factory, db_session):
        order = await order_factory(["processing"])
        item_id = await first_item_id(db_session, order.id)

        response = await admin_client.put(
            f"/api/orders/{order.id}/items", json={"item_id": item_id, "shipping": 12.5},
        )

        assert response.status_code == 200
        assert response.json()["order_shipping_amount"] == 12.5


class TestItemWorkflowAPI:
    """商品工作流切换"""

    @pytest.mark.asyncio
    async def test_operator_cannot_cancel(self, login_as, operator, order_factory, db_session):
        order = await order_factory(["processing"])
        item_id = await first_item_id(db_session, order.id)

        response = await login_as(operator).put(
            f"/api/orders/items/{item_id}/workflow", json={"to_status_key": "cancelled"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_user_without_permission(self, login_as, operator, order_factory, db_session):
        order = await order_factory(["processing"])
        item_id = await first_item_id(db_session, order.id)
        viewer = operator.model_copy(update={"permissions": []})

        response = await login_as(viewer).put(
            f"/api/orders/items/{item_id}/workflow", json={"to_status_key": "ordered"},
        )

        assert response.status_code == 403
        assert "Missing permission" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_super_admin_change_and_allowed_list(self, admin_client, order_factory, db_session):
        order = await order_factory(["processing"])
        item_id = await first_item_id(db_session, order.id)

        changed = await admin_client.put(
            f"/api/orders/items/{item_id}/workflow", json={"to_status_key": "ordered"},
        )
        workflow = await admin_client.get(f"/api/orders/items/{item_id}/workflow")

        assert changed.status_code == 200
        assert changed.json()["order_new_status"] == "ordered"
        assert workflow.json()["current_status"]["key"] == "ordered"

    @pytest.mark.asyncio
    async def test_bulk(self, admin_client, order_factory, db_session):
        order = await order_factory(["processing", None])
        ids = list((await db_session.execute(
            select(OrderItem.id).where(OrderItem.r_order_id == order.id)
        )).scalars().all())

        response = await admin_client.put(
            "/api/orders/items/bulk-workflow", json={"item_ids": ids, "to_status_key": "ordered"},
        )

        assert response.status_code == 200
        assert response.json()["updated_count"] == 1
        assert response.json()["skipped_count"] == 1

    @pytest.mark.asyncio
    async def test_bulk_limit_is_400(self, admin_client):
        response = await admin_client.put(
            "/api/orders/items/bulk-workflow",
            json={"item_ids": list(range(1, 202)), "to_status_key": "ordered"},
        )

        assert response.status_code == 400


class TestInvoicesAPI:
    """GET / PUT /api/invoices/{id}"""

    @pytest.mark.asyncio
    async def test_detail_and_update(self, admin_client, order_factory):
        order = await order_factory(["processing"])
        created = await admin_client.post(f"/api/orders/{order.id}/invoices", json={"type": "shipping"})
        invoice_id = created.json()["invoice"]["id"]

        detail = await admin_client.get(f"/api/invoices/{invoice_id}")
        updated = await admin_client.put(f"/api/invoices/{invoice_id}", json={"shipping_amount": 30})

        assert detail.json()["invoice"]["invoice_number"] == "INV-00000001"
        assert updated.json()["invoice"]["total"] == 35.0

    @pytest.mark.asyncio
    async def test_invalid_status_is_400_and_missing_is_404(self, admin_client, order_factory):
        order = await order_factory(["processing"])
        created = await admin_client.post(f"/api/orders/{order.id}/invoices", json={"type": "product"})
        invoice_id = created.json()["invoice"]["id"]

        invalid = await admin_client.put(f"/api/invoices/{invoice_id}", json={"status": "paid"})
        missing = await admin_client.get("/api/invoices/999")

        assert invalid.status_code == 400
        assert missing.status_code == 404
