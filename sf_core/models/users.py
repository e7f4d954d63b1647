"""
用户数据模型
认证（登录、令牌签发）不在本服务范围内，这里只保留订单归属和权限判断需要的字段
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow
from .enums import UserRole, enum_values


class User(Base):
    """用户模型"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        BigIntPK,
        primary_key=True,
        comment="用户ID"
    )

    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="用户名"
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="邮箱"
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(100), comment="名")
    last_name: Mapped[Optional[str]] = mapped_column(String(100), comment="姓")

    # 状态和权限
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="是否激活"
    )
    role: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint(f"role IN ({enum_values(UserRole)})", name="ck_users_role"),
        nullable=False,
        default=UserRole.USER.value,
        comment="角色：admin/user"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_public_dict(self) -> dict:
        """订单等响应中嵌入的用户信息"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }
