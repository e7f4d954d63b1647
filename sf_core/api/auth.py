"""
认证依赖
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sf_core.models import User
from sf_core.services.auth_service import get_auth_service
from sf_core.utils.errors import ForbiddenError, UnauthorizedError
from sf_core.utils.logger import user_id_var

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> User:
    """获取当前认证用户（JWT Token）"""
    if credentials is None:
        raise UnauthorizedError(
            code="MISSING_AUTH_HEADER",
            detail="Authorization header with Bearer token is required"
        )

    user = await get_auth_service().authenticate(credentials.credentials)

    request.state.user_id = user.id
    user_id_var.set(user.id)
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """仅管理员可访问的依赖项"""
    if not current_user.is_admin:
        raise ForbiddenError(
            code="ADMIN_REQUIRED",
            detail="Administrator privileges are required"
        )
    return current_user
