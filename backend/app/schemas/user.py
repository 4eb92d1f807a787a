# app/schemas/user.py
# 后台账号数据验证模式
#
# 功能说明：
# 1. 登录、注册请求
# 2. 当前会话信息响应
# 3. 后台账号管理（创建、修改）
#
# Schema 和 Model 的区别：
# - Model（models/user.py）：定义数据库表结构，用于存储数据
# - Schema（这个文件）：定义 API 数据格式，用于验证输入输出

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


# ==================== 登录 / 注册 ====================

class LoginRequest(BaseModel):
    """
    登录请求模式

    用于 POST /api/auth/login 接口，username 为登录邮箱
    """

    username: str = Field(
        ...,
        min_length=1,
        description="Login email",
        examples=["admin@example.com"],
    )

    password: str = Field(
        ...,
        min_length=1,
        description="Password",
        examples=["123456"],
    )


class SignupRequest(BaseModel):
    """
    注册请求模式

    用于 POST /api/auth/signup 接口

    属性：
        email: 邮箱地址，必须是有效的邮箱格式
        password: 密码，最少 6 位
        name: 显示名称
    """

    email: EmailStr = Field(..., description="Email address", examples=["admin@example.com"])
    password: str = Field(..., description="Password, at least 6 characters")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


# ==================== 会话信息 ====================

class SessionResponse(BaseModel):
    """
    当前会话信息

    permissions 为角色权限合并个人覆盖后的有效权限
    """

    user_id: int = Field(..., description="ag_users.id")
    email: str
    name: str
    role_key: str = Field(..., description="角色 key，无角色时为 none")
    role_name: str
    permissions: List[str] = Field(default_factory=list)


class AuthResponse(BaseModel):
    success: bool = True
    user: SessionResponse


class MessageResponse(BaseModel):
    """简单消息响应模式"""

    message: str = Field(..., description="Message content")


# ==================== 账号管理 ====================

class CmsUserCreate(BaseModel):
    """创建后台账号，POST /api/cms-users"""

    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=1, description="Password, at least 6 characters")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    is_active: bool = Field(True, description="Disabled accounts cannot log in")

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class CmsUserUpdate(BaseModel):
    """
    修改后台账号，PUT /api/cms-users/{id}

    只修改传入的字段，password 为空表示不修改密码
    """

    email: Optional[EmailStr] = Field(None, description="Login email")
    password: Optional[str] = Field(None, description="New password, at least 6 characters")
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v
