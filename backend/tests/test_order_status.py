# tests/test_order_status.py
# 订单状态流转与映射测试

import pytest

from app.core.exceptions import TransitionError, ValidationError
from app.services.order_status import (
    ORDER_STATUS_LABELS,
    VALID_STATUS_TRANSITIONS,
    WORKFLOW_STATUSES,
    ensure_workflow_statuses,
    legacy_to_workflow_key,
    status_label,
    validate_transition,
    workflow_key_to_legacy,
)


class TestLegacyTransitions:
    """旧版状态流转表"""

    def test_table_accepts_exactly_listed_pairs(self):
        """流转表中的组合全部通过，其余组合全部拒绝"""
        for current in ORDER_STATUS_LABELS:
            for new in ORDER_STATUS_LABELS:
                if new in VALID_STATUS_TRANSITIONS[current]:
                    validate_transition(current, new)
                else:
                    with pytest.raises(TransitionError):
                        validate_transition(current, new)

    def test_pending_to_confirmed(self):
        validate_transition(9, 1)

    def test_refunded_is_final(self):
        for new in ORDER_STATUS_LABELS:
            with pytest.raises(TransitionError):
                validate_transition(6, new)

    def test_error_names_both_states(self):
        with pytest.raises(TransitionError) as exc_info:
            validate_transition(4, 1)

        assert "Delivered" in exc_info.value.message
        assert "Confirmed" in exc_info.value.message
        assert exc_info.value.status_code == 400

    def test_unknown_target_is_validation_error(self):
        with pytest.raises(ValidationError):
            validate_transition(9, 42)

    def test_unknown_label(self):
        assert status_label(42) == "#42"
        assert status_label(None) == "Unknown"


class TestWorkflowMapping:
    """旧版状态码 ↔ 工作流 key"""

    @pytest.mark.parametrize(
        "code,key",
        [
            (9, "processing"),
            (1, "processing"),
            (2, "processing"),
            (8, "processing"),
            (7, "processing"),
            (10, "ordered"),
            (3, "shipped_to_leb"),
            (4, "delivered_to_customer"),
            (5, "cancelled"),
            (6, "refunded"),
        ],
    )
    def test_legacy_to_workflow(self, code, key):
        assert legacy_to_workflow_key(code) == key

    def test_unknown_legacy_code(self):
        with pytest.raises(ValidationError):
            legacy_to_workflow_key(0)

    def test_only_terminal_keys_map_back(self):
        assert workflow_key_to_legacy("cancelled") == 5
        assert workflow_key_to_legacy("refunded") == 6
        assert workflow_key_to_legacy("ordered") is None

    def test_terminal_statuses_sort_after_pipeline(self):
        pipeline = [s.order for s in WORKFLOW_STATUSES if not s.is_terminal]
        terminal = [s.order for s in WORKFLOW_STATUSES if s.is_terminal]

        assert pipeline == sorted(pipeline)
        assert min(terminal) > max(pipeline)


class TestEnsureWorkflowStatuses:
    """状态字典初始化"""

    @pytest.mark.asyncio
    async def test_is_idempotent(self, db_session):
        """db_session 已初始化过一次，再次调用不插入新行"""
        assert await ensure_workflow_statuses(db_session) == 0
