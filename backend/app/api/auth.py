# app/api/auth.py
# 认证 API 路由
#
# 功能说明：
# 1. 管理员登录（会话 JWT 写入 httponly Cookie）
# 2. 注册首个管理员（自动分配 super_admin 角色并登录）
# 3. 获取当前会话信息
# 4. 退出登录
#
# API 列表：
# ┌─────────────────────────────────────────────────────────────┐
# │  方法  │  路径                    │  说明                   │
# ├────────┼─────────────────────────┼────────────────────────┤
# │  POST  │  /api/auth/login        │  登录                   │
# │  POST  │  /api/auth/signup       │  注册                   │
# │  GET   │  /api/auth/me           │  当前会话信息           │
# │  POST  │  /api/auth/logout       │  退出登录               │
# └─────────────────────────────────────────────────────────────┘
#
# 会话内容：
#   user_id / email / name / role_key / role_name / permissions
#   权限在登录时计算并写入 Token，角色变更后需要重新登录才生效

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import (
    SUPER_ADMIN_ROLE,
    SessionUser,
    clear_session_cookie,
    create_session_token,
    get_current_session,
    hash_password,
    set_session_cookie,
    verify_password,
)
from app.core.logging import get_logger
from app.models.user import CmsUser
from app.schemas.user import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    SessionResponse,
    SignupRequest,
)
from app.services.rbac import rbac_service


logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


async def _open_session(db: AsyncSession, user: CmsUser, response: Response) -> SessionUser:
    """计算角色权限，签发会话 Cookie"""
    role = await rbac_service.get_role_and_permissions(db, user.id)
    session_user = SessionUser(
        user_id=user.id,
        email=user.email,
        name=user.name,
        role_key=role.role_key,
        role_name=role.role_name,
        permissions=role.permissions,
    )
    set_session_cookie(response, create_session_token(session_user))
    return session_user


# ==================== 登录 ====================

@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login",
    description="Login with email and password, session is stored in an httponly cookie",
)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    管理员登录

    请求示例：
        POST /api/auth/login
        {"username": "admin@example.com", "password": "123456"}
    """
    result = await db.execute(select(CmsUser).where(CmsUser.email == credentials.username))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"[Auth] 登录失败: {credentials.username}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not user.is_active:
        logger.warning(f"[Auth] 已禁用账号尝试登录: {credentials.username}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    user.last_login_at = datetime.utcnow()
    await db.commit()

    session_user = await _open_session(db, user, response)
    logger.info(f"[Auth] 登录成功: {user.email} (role={session_user.role_key})")
    return AuthResponse(user=SessionResponse(**session_user.model_dump()))


# ==================== 注册 ====================

@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Signup",
    description="Create an admin account with the super_admin role and log in",
)
async def signup(
    data: SignupRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    注册管理员账号

    新账号分配 super_admin 角色（角色不存在时自动创建），注册成功即登录
    """
    existing = await db.execute(select(CmsUser).where(CmsUser.email == data.email))
    if existing.scalar_one_or_none():
        logger.warning(f"[Auth] 注册失败，邮箱已存在: {data.email}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    try:
        user = CmsUser(
            email=data.email,
            password_hash=hash_password(data.password),
            name=data.name,
            is_active=True,
        )
        db.add(user)
        await db.flush()

        role = await rbac_service.ensure_role(db, SUPER_ADMIN_ROLE, "Super Admin")
        await rbac_service.assign_role(db, user.id, role)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    session_user = await _open_session(db, user, response)
    logger.info(f"[Auth] 注册成功: {user.email}")
    return AuthResponse(user=SessionResponse(**session_user.model_dump()))


# ==================== 会话 ====================

@router.get("/me", response_model=SessionResponse, summary="Current session")
async def me(session: SessionUser = Depends(get_current_session)) -> SessionResponse:
    return SessionResponse(**session.model_dump())


@router.post("/logout", response_model=MessageResponse, summary="Logout")
async def logout(response: Response) -> MessageResponse:
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")
