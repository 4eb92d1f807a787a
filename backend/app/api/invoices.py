# app/api/invoices.py
# 发票 API
#
# 功能说明：
# 1. 发票详情（附查看地址）
# 2. 修改备注、状态、金额
#
# 路由：
#   GET  /api/invoices/{id}    发票详情
#   PUT  /api/invoices/{id}    修改发票
#
# 说明：
#   生成发票和订单下的发票列表见 /api/orders/{id}/invoices

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.schemas.invoice import InvoiceUpdate
from app.services.invoice_service import invoice_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["发票"])


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return {"invoice": await invoice_service.get_invoice(session, invoice_id)}


@router.put("/{invoice_id}")
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """修改发票，金额变化时 total 自动重算（除非显式传 total）"""
    invoice = await invoice_service.update_invoice(session, invoice_id, data.model_dump(exclude_unset=True))
    logger.info(f"[InvoicesAPI] {user.email} 修改发票 {invoice['invoice_number']}")
    return {"success": True, "invoice": invoice}
