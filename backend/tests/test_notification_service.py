# tests/test_notification_service.py
# 通知服务测试

import pytest
from sqlalchemy import func, select

from app.core.exceptions import NotFoundError, ValidationError
from app.models.customer import Customer
from app.models.notification import Notification, UserNotification
from app.services.backend_client import SEND_PUSH_PATH, SEND_PUSH_TO_TOPIC_PATH
from app.services.notification_service import notification_service


@pytest.fixture
async def customers(db_session):
    db_session.add_all([
        Customer(id=1, first_name="Rami", last_name="Haddad", email="rami@example.com", mobile_token="tok-1"),
        Customer(id=2, first_name="Nour", email="nour@example.com"),
        Customer(id=3, first_name="Old", email="old@example.com", is_active=False),
    ])
    await db_session.commit()
    return db_session


class TestCreateNotification:
    """手动创建通知"""

    @pytest.mark.asyncio
    async def test_broadcast_reaches_active_customers(self, customers, backend_calls):
        notification, reach = await notification_service.create_notification(
            customers, "Weekend sale", "Everything 20% off", notification_type="promo", send_push=True,
        )

        assert notification.r_user_id is None
        assert reach == 2
        assert [path for path, _ in backend_calls] == [SEND_PUSH_TO_TOPIC_PATH]

    @pytest.mark.asyncio
    async def test_single_user_push_to_device(self, customers, backend_calls):
        _, reach = await notification_service.create_notification(
            customers, "Hello", "Your parcel arrived", r_user_id=1, send_push=True,
        )

        assert reach == 1
        assert backend_calls[0][0] == SEND_PUSH_PATH
        assert "tok-1" in backend_calls[0][1]

    @pytest.mark.asyncio
    async def test_no_push_unless_requested(self, customers, backend_calls):
        await notification_service.create_notification(customers, "Quiet", "No push")

        assert backend_calls == []

    @pytest.mark.asyncio
    async def test_subject_and_body_required(self, customers):
        with pytest.raises(ValidationError):
            await notification_service.create_notification(customers, "", "body")


class TestListNotifications:
    """列表、筛选与统计"""

    @pytest.mark.asyncio
    async def test_reach_and_stats(self, customers):
        await notification_service.create_notification(customers, "Sale", "20% off", notification_type="promo")
        await notification_service.notify_customer(customers, 1, "Order #5 Shipping", "On its way", row_id=5)

        result = await notification_service.list_notifications(customers)

        by_subject = {n["subject"]: n for n in result["notifications"]}
        assert by_subject["Sale"]["reach_count"] == 2
        assert by_subject["Sale"]["seen_count"] == 0
        assert by_subject["Order #5 Shipping"]["target_user"]["first_name"] == "Rami"
        assert result["stats"] == {"total": 2, "broadcast": 1, "order": 1, "promo": 1}
        assert result["pagination"]["total_pages"] == 1

    @pytest.mark.asyncio
    async def test_filters(self, customers):
        await notification_service.create_notification(customers, "Sale", "20% off", notification_type="promo")
        await notification_service.create_notification(customers, "Hi Rami", "Welcome back", r_user_id=1)

        single = await notification_service.list_notifications(customers, target="single")
        promo = await notification_service.list_notifications(customers, notification_type="promo")
        searched = await notification_service.list_notifications(customers, search="Welcome")

        assert [n["subject"] for n in single["notifications"]] == ["Hi Rami"]
        assert [n["subject"] for n in promo["notifications"]] == ["Sale"]
        assert searched["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_sort_by_subject(self, customers):
        for subject in ("Beta", "Alpha", "Gamma"):
            await notification_service.create_notification(customers, subject, "body")

        result = await notification_service.list_notifications(customers, sort="subject", order="asc", limit=2)

        assert [n["subject"] for n in result["notifications"]] == ["Alpha", "Beta"]
        assert result["pagination"]["total_pages"] == 2


class TestNotificationDetail:
    """详情与删除"""

    @pytest.mark.asyncio
    async def test_broadcast_recipients_and_seen_stats(self, customers):
        notification, _ = await notification_service.create_notification(customers, "Sale", "20% off")
        row = await customers.scalar(
            select(UserNotification).where(UserNotification.r_user_id == 2)
        )
        row.is_seen = 1
        await customers.commit()

        detail = await notification_service.get_notification(customers, notification.id)

        assert detail["target_user"] is None
        assert detail["recipient_stats"] == {"total": 2, "seen": 1, "unseen": 1}
        assert {(r["id"], r["is_seen"]) for r in detail["recipients"]} == {(1, 0), (2, 1)}
        assert detail["related_entity"] is None

    @pytest.mark.asyncio
    async def test_single_user_with_related_order(self, customers, order_factory):
        order = await order_factory(["processing"], status=1)
        notification, _ = await notification_service.create_notification(
            customers, "Order update", "Confirmed", notification_type="order", r_user_id=1, row_id=order.id,
        )

        detail = await notification_service.get_notification(customers, notification.id)

        assert detail["target_user"]["email"] == "rami@example.com"
        assert detail["recipient_stats"] is None
        assert detail["related_entity"]["type"] == "order"
        assert detail["related_entity"]["data"]["status_label"] == "Confirmed"

    @pytest.mark.asyncio
    async def test_related_product(self, customers, products):
        notification, _ = await notification_service.create_notification(
            customers, "New arrival", "Check it out", notification_type="product", r_user_id=2, row_id=2,
        )

        detail = await notification_service.get_notification(customers, notification.id)

        assert detail["related_entity"]["data"]["product_name"] == "Laptop stand"

    @pytest.mark.asyncio
    async def test_delete_removes_recipients(self, customers):
        notification, _ = await notification_service.create_notification(customers, "Sale", "20% off")

        await notification_service.delete_notification(customers, notification.id)

        assert await customers.get(Notification, notification.id) is None
        assert await customers.scalar(select(func.count(UserNotification.id))) == 0

    @pytest.mark.asyncio
    async def test_missing_is_404(self, customers):
        with pytest.raises(NotFoundError):
            await notification_service.get_notification(customers, 999)
        with pytest.raises(NotFoundError):
            await notification_service.delete_notification(customers, 999)
