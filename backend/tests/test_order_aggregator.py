# tests/test_order_aggregator.py
# 订单状态聚合测试

from dataclasses import dataclass

import pytest
from sqlalchemy import func, select

from app.models.order import Order, OrderTracking
from app.services.order_aggregator import derive_order_status, recompute_order_status


@dataclass
class FakeStatus:
    id: int
    status_key: str
    status_label: str
    status_order: int
    is_terminal: bool = False


STATUSES = {
    1: FakeStatus(1, "processing", "Processing", 1),
    2: FakeStatus(2, "ordered", "Ordered", 2),
    3: FakeStatus(3, "shipped_to_wh", "Shipped to WH", 3),
    8: FakeStatus(8, "cancelled", "Cancelled", 90, is_terminal=True),
    9: FakeStatus(9, "refunded", "Refunded", 91, is_terminal=True),
}


class TestDeriveOrderStatus:
    """纯函数推导"""

    def test_slowest_non_terminal_item_wins(self):
        derived = derive_order_status([(1, 2), (2, 3)], STATUSES)

        assert derived.status_key == "ordered"
        assert derived.tracking_status_id == 2
        assert derived.legacy_status is None

    def test_terminal_items_are_ignored_while_others_are_active(self):
        derived = derive_order_status([(1, 8), (2, 3)], STATUSES)

        assert derived.status_key == "shipped_to_wh"

    def test_mixed_terminal_items_give_cancelled(self):
        derived = derive_order_status([(1, 8), (2, 9)], STATUSES)

        assert derived.status_key == "cancelled"
        assert derived.legacy_status == 5
        assert derived.tracking_status_id == 90

    def test_all_refunded_gives_refunded(self):
        derived = derive_order_status([(1, 9), (2, 9)], STATUSES)

        assert derived.status_key == "refunded"
        assert derived.legacy_status == 6

    def test_tie_break_is_lowest_item_id(self):
        statuses = {
            **STATUSES,
            4: FakeStatus(4, "alt_ordered", "Ordered (alt)", 2),
        }

        derived = derive_order_status([(7, 4), (3, 2)], statuses)

        assert derived.workflow_status_id == 2

    def test_items_without_status_are_skipped(self):
        assert derive_order_status([(1, None), (2, 99)], STATUSES) is None
        assert derive_order_status([(1, None), (2, 1)], STATUSES).status_key == "processing"

    def test_unassigned_item_blocks_terminal_outcome(self):
        assert derive_order_status([(1, 8), (2, None)], STATUSES) is None
        assert derive_order_status([(1, 9), (2, 99)], STATUSES) is None

    def test_cancelled_fallback_without_dictionary_row(self):
        statuses = {9: STATUSES[9], 10: FakeStatus(10, "lost", "Lost", 95, is_terminal=True)}

        derived = derive_order_status([(1, 9), (2, 10)], statuses)

        assert derived.status_key == "cancelled"
        assert derived.workflow_status_id is None
        assert derived.tracking_status_id == 90


class TestRecomputeOrderStatus:
    """写入订单与轨迹"""

    @pytest.mark.asyncio
    async def test_writes_status_and_single_tracking_row(self, db_session, order_factory, statuses):
        order = await order_factory(["shipped_to_wh", "ordered"])

        derived, changed = await recompute_order_status(db_session, order.id)
        await db_session.commit()

        assert changed is True
        assert derived.status_key == "ordered"
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.workflow_status_id == statuses["ordered"].id

        # 第二次调用状态未变化，不追加轨迹
        _, changed_again = await recompute_order_status(db_session, order.id)
        await db_session.commit()
        count = await db_session.scalar(
            select(func.count(OrderTracking.id)).where(OrderTracking.r_order_id == order.id)
        )

        assert changed_again is False
        assert count == 1

    @pytest.mark.asyncio
    async def test_all_cancelled_sets_legacy_status(self, db_session, order_factory):
        order = await order_factory(["cancelled", "cancelled"], status=2)

        derived, changed = await recompute_order_status(db_session, order.id)
        await db_session.commit()

        assert changed is True
        assert (await db_session.get(Order, order.id)).status == 5

    @pytest.mark.asyncio
    async def test_missing_order(self, db_session):
        assert await recompute_order_status(db_session, 999) == (None, False)
