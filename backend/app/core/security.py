# app/core/security.py
# 安全认证模块
#
# 功能说明：
# 1. 密码加密和验证（使用 bcrypt）
# 2. 会话 JWT 的生成和验证
# 3. 提供 FastAPI 依赖注入函数获取当前会话、校验权限点
#
# 会话认证流程：
# ┌─────────────────────────────────────────────────────────────┐
# │                      Cookie 会话流程                         │
# ├─────────────────────────────────────────────────────────────┤
# │  1. 管理员登录                                               │
# │     POST /api/auth/login {username, password}               │
# │              ↓                                               │
# │  2. 验证密码，读取角色与合并后的权限                          │
# │     verify_password() + rbac_service.get_role_and_permissions│
# │              ↓                                               │
# │  3. 生成会话 Token（3 天）并写入 httponly Cookie             │
# │     Set-Cookie: cms_session=<jwt>                           │
# │              ↓                                               │
# │  4. 后续请求自动携带 Cookie                                  │
# │     get_current_session() -> SessionUser                    │
# │              ↓                                               │
# │  5. 需要权限点的接口                                         │
# │     Depends(require_permission("action.orders.item.refund"))│
# └─────────────────────────────────────────────────────────────┘
#
# 说明：
#   角色和权限在登录时写入 Token，权限变更后需重新登录才生效

from datetime import datetime, timedelta
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from fastapi import Depends, HTTPException, Request, Response, status

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# 拥有全部权限的角色
SUPER_ADMIN_ROLE = "super_admin"


# ==================== 密码加密配置 ====================

# 旧系统（PHP）写入的 $2y$ 前缀哈希，passlib 的 bcrypt 也能校验
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    """
    对密码进行哈希加密

    Args:
        password: 明文密码

    Returns:
        str: bcrypt 哈希值（60 个字符）
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证明文密码与数据库中的哈希是否匹配"""
    return pwd_context.verify(plain_password, hashed_password)


# ==================== 会话 ====================

class SessionUser(BaseModel):
    """会话中携带的用户信息"""

    user_id: int = Field(..., description="ag_users.id")
    email: str
    name: str
    role_key: str = Field("none", description="角色标识")
    role_name: str = Field("No Role", description="角色名称")
    permissions: list[str] = Field(default_factory=list, description="合并后的权限点")

    @property
    def is_super_admin(self) -> bool:
        return self.role_key == SUPER_ADMIN_ROLE

    def has_permission(self, key: str) -> bool:
        return self.is_super_admin or key in self.permissions


def create_session_token(
    user: SessionUser,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    创建会话 Token

    Args:
        user: 会话用户信息
        expires_delta: 可选的过期时间，默认使用 SESSION_EXPIRE_SECONDS

    Returns:
        str: JWT Token 字符串

    Token 结构：
        payload: {"sub": "<user_id>", "exp": ..., "type": "session", "user": {...}}
    """
    expire = datetime.utcnow() + (
        expires_delta or timedelta(seconds=settings.SESSION_EXPIRE_SECONDS)
    )
    to_encode = {
        "sub": str(user.user_id),
        "exp": expire,
        "type": "session",
        "user": user.model_dump(),
    }

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )

    logger.debug(f"创建会话 Token，过期时间: {expire}")
    return encoded_jwt


def decode_token(token: str) -> Optional[dict]:
    """
    解码并验证 JWT Token

    Returns:
        dict: 解码后的 payload，签名错误或已过期时返回 None
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning(f"Token 验证失败: {e}")
        return None


def set_session_cookie(response: Response, token: str) -> None:
    """把会话 Token 写入 httponly Cookie"""
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_EXPIRE_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")


# ==================== FastAPI 依赖注入函数 ====================

async def get_current_session(request: Request) -> SessionUser:
    """
    获取当前登录的管理员（FastAPI 依赖注入）

    从 Cookie 中读取会话 Token，验证后返回会话用户

    Raises:
        HTTPException: 未登录或会话无效时返回 401

    使用示例：
        @router.get("/me")
        async def me(session: SessionUser = Depends(get_current_session)):
            return session
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )

    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise credentials_exception

    payload = decode_token(token)
    if payload is None or payload.get("type") != "session":
        raise credentials_exception

    user_data = payload.get("user")
    if not user_data:
        logger.warning("会话 Token 中没有用户信息")
        raise credentials_exception

    return SessionUser(**user_data)


def require_permission(permission_key: str) -> Callable:
    """
    权限点校验依赖工厂

    使用示例：
        @router.post("/{order_id}/refund")
        async def refund(
            order_id: int,
            session: SessionUser = Depends(require_permission("action.orders.refund")),
        ):
            ...
    """

    async def dependency(
        session: SessionUser = Depends(get_current_session),
    ) -> SessionUser:
        if not session.has_permission(permission_key):
            logger.warning(
                f"[Security] 权限不足: user={session.user_id} 需要 {permission_key}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission_key}",
            )
        return session

    return dependency
