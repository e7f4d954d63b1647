"""
认证服务
令牌由外部身份系统签发，这里负责 JWT 校验与当前用户加载；
create_access_token 供运维脚本和测试签发令牌使用。
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from jose import JWTError, jwt
from sqlalchemy import select

from sf_core.config import get_settings
from sf_core.database import get_db_manager
from sf_core.models import User
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import UnauthorizedError

logger = get_logger(__name__)


class AuthService:
    """认证服务"""

    def __init__(self):
        self.settings = get_settings()
        self.access_token_expire = timedelta(minutes=self.settings.access_token_expire_minutes)
        self.algorithm = self.settings.algorithm

    # ========== JWT处理 ==========

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        """创建访问令牌"""
        expire = datetime.now(timezone.utc) + (expires_delta or self.access_token_expire)
        to_encode = {
            "sub": str(user.id),
            "role": user.role,
            "exp": expire,
            "type": "access",
            "jti": str(uuid4()),
        }
        return jwt.encode(to_encode, self.settings.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """解码JWT令牌"""
        try:
            return jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.algorithm]
            )
        except JWTError as e:
            raise UnauthorizedError(
                code="INVALID_TOKEN",
                detail=f"Token validation failed: {str(e)}"
            )

    async def authenticate(self, token: str) -> User:
        """校验访问令牌并加载有效用户"""
        payload = self.decode_token(token)

        if payload.get("type") != "access":
            raise UnauthorizedError(code="INVALID_TOKEN_TYPE", detail="Invalid token type")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise UnauthorizedError(code="INVALID_TOKEN", detail="Token subject is missing")

        # 用独立的短会话查询，避免与业务事务同时占用连接
        async with get_db_manager().get_session() as session:
            user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()

        if not user or not user.is_active:
            logger.info("Rejected token for unknown or inactive user", user_id=user_id)
            raise UnauthorizedError(code="USER_NOT_FOUND", detail="User not found or inactive")

        return user


# 全局认证服务实例
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """获取认证服务单例"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
