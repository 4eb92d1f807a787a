# app/schemas/__init__.py
# Pydantic Schema 包
#
# 这个文件用于导出所有 Schema，方便其他模块导入
# 使用方式：from app.schemas import LoginRequest, CategoryUpdate

from app.schemas.user import (
    LoginRequest,
    SignupRequest,
    SessionResponse,
    AuthResponse,
    MessageResponse,
)
from app.schemas.category import (
    CategoryTreeNode,
    CategoryTreeResponse,
    CategoryResponse,
    CategoryListItem,
    CategoryListResponse,
    CategoryDetailResponse,
    CategoryUpdate,
    CategoryReorderRequest,
    CategoryExclusionRequest,
    CategoryExclusionResponse,
)
from app.schemas.product import (
    PricingInfo,
    ProductListItem,
    ProductListResponse,
)
from app.schemas.order import (
    OrderStatusUpdate,
    OrderStatusResponse,
    OrderUpdate,
    RefundRequest,
    RefundResponse,
    OrderItemUpdate,
    ItemWorkflowChange,
    BulkWorkflowChange,
)
from app.schemas.invoice import InvoiceCreate
from app.schemas.notification import NotificationCreate
from app.schemas.marketing import (
    SliderCreate,
    SliderUpdate,
    GridElementCreate,
    GridElementUpdate,
    FlashSaleProductsRequest,
)
from app.schemas.settings import PricingSettings, PricingSettingsUpdate

__all__ = [
    "LoginRequest",
    "SignupRequest",
    "SessionResponse",
    "AuthResponse",
    "MessageResponse",
    "CategoryTreeNode",
    "CategoryTreeResponse",
    "CategoryResponse",
    "CategoryListItem",
    "CategoryListResponse",
    "CategoryDetailResponse",
    "CategoryUpdate",
    "CategoryReorderRequest",
    "CategoryExclusionRequest",
    "CategoryExclusionResponse",
    "PricingInfo",
    "ProductListItem",
    "ProductListResponse",
    "OrderStatusUpdate",
    "OrderStatusResponse",
    "OrderUpdate",
    "RefundRequest",
    "RefundResponse",
    "OrderItemUpdate",
    "ItemWorkflowChange",
    "BulkWorkflowChange",
    "InvoiceCreate",
    "NotificationCreate",
    "SliderCreate",
    "SliderUpdate",
    "GridElementCreate",
    "GridElementUpdate",
    "FlashSaleProductsRequest",
    "PricingSettings",
    "PricingSettingsUpdate",
]
