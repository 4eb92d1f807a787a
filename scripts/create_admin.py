#!/usr/bin/env python3
# scripts/create_admin.py
# 创建后台管理员账户脚本
#
# 功能说明：
# 1. 创建管理员账户并分配 super_admin 角色
# 2. 邮箱已存在时只补齐角色，不修改密码
# 3. 初始化工作流状态字典
#
# 使用方法（先 pip install -e .）：
#   python scripts/create_admin.py
#   python scripts/create_admin.py --email admin@example.com --password mypassword --name Admin
#
# 默认账户：
#   邮箱: admin@chihelo.com
#   密码: admin123456

import argparse
import asyncio
import sys

from sqlalchemy import select

from app.core.database import async_session_maker, close_db
from app.core.security import SUPER_ADMIN_ROLE, hash_password
from app.models.user import CmsUser
from app.services.order_status import ensure_workflow_statuses
from app.services.rbac import rbac_service


async def create_admin(email: str, password: str, name: str) -> bool:
    async with async_session_maker() as session:
        await ensure_workflow_statuses(session)

        result = await session.execute(select(CmsUser).where(CmsUser.email == email))
        user = result.scalar_one_or_none()
        created = user is None

        if created:
            user = CmsUser(
                email=email,
                password_hash=hash_password(password),
                name=name,
                is_active=True,
            )
            session.add(user)
            await session.flush()

        role = await rbac_service.ensure_role(session, SUPER_ADMIN_ROLE, "Super Admin")
        await rbac_service.assign_role(session, user.id, role)
        await session.commit()

    await close_db()

    if created:
        print("✅ 管理员账户创建成功！")
    else:
        print(f"⚠️  账户已存在，已确认角色为 {SUPER_ADMIN_ROLE}（密码未修改）")
    print(f"   邮箱: {email}")
    return True


def main():
    parser = argparse.ArgumentParser(description="创建 Chihelo CMS 管理员账户")
    parser.add_argument("-e", "--email", default="admin@chihelo.com", help="管理员邮箱")
    parser.add_argument("-p", "--password", default="admin123456", help="管理员密码（至少 6 位）")
    parser.add_argument("-n", "--name", default="Admin", help="显示名称")
    args = parser.parse_args()

    if len(args.password) < 6:
        print("❌ 密码长度至少 6 位")
        sys.exit(1)

    success = asyncio.run(create_admin(email=args.email, password=args.password, name=args.name))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
