# app/models/__init__.py
# 数据模型包
#
# 这个文件用于导出所有数据模型，方便其他模块导入
# 使用方式：from app.models import Order

from app.models.user import CmsUser
from app.models.rbac import (
    CmsRole,
    CmsPermission,
    CmsRolePermission,
    CmsUserRole,
    CmsUserPermissionOverride,
    CmsRoleItemTransition,
)
from app.models.settings import SystemSetting
from app.models.category import Category, ExcludedCategory
from app.models.product import Product
from app.models.customer import Customer, Coupon
from app.models.order import (
    Order,
    OrderItem,
    OrderItemStatus,
    OrderItemStatusHistory,
    OrderTracking,
    PaymentTransaction,
)
from app.models.invoice import Invoice
from app.models.notification import Notification, UserNotification
from app.models.marketing import Slider, Grid, GridElement, FlashSale, FlashSaleProduct

# 导出所有模型（init_db 通过导入本包注册全部表）
__all__ = [
    "CmsUser",
    "CmsRole",
    "CmsPermission",
    "CmsRolePermission",
    "CmsUserRole",
    "CmsUserPermissionOverride",
    "CmsRoleItemTransition",
    "SystemSetting",
    "Category",
    "ExcludedCategory",
    "Product",
    "Customer",
    "Coupon",
    "Order",
    "OrderItem",
    "OrderItemStatus",
    "OrderItemStatusHistory",
    "OrderTracking",
    "PaymentTransaction",
    "Invoice",
    "Notification",
    "UserNotification",
    "Slider",
    "Grid",
    "GridElement",
    "FlashSale",
    "FlashSaleProduct",
]
