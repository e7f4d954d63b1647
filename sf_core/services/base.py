"""
基础服务类
"""
import math
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
from abc import ABC

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.config import get_settings
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import ShopFlowException, InternalServerError
from sf_core.database import get_db_manager


@dataclass
class Page:
    """分页参数"""
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def describe(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "pages": math.ceil(total / self.limit) if self.limit else 0,
        }


class BaseService(ABC):
    """基础服务类"""

    def __init__(self):
        self.db_manager = get_db_manager()
        self.settings = get_settings()
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_transaction(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """在单个事务中执行操作：成功提交，任何异常整体回滚"""
        try:
            async with self.db_manager.get_transaction() as session:
                return await operation(session, *args, **kwargs)
        except ShopFlowException:
            raise
        except Exception:
            self.logger.error(
                "Transaction operation failed",
                operation=getattr(operation, "__name__", str(operation)),
                exc_info=True
            )
            raise InternalServerError(
                code="TRANSACTION_FAILED",
                detail="The operation could not be completed"
            )

    async def execute_with_session(
        self,
        operation,
        *args,
        **kwargs
    ) -> Any:
        """使用数据库会话执行只读操作"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except ShopFlowException:
            raise
        except Exception:
            self.logger.error(
                "Session operation failed",
                operation=getattr(operation, "__name__", str(operation)),
                exc_info=True
            )
            raise InternalServerError(
                code="SESSION_OPERATION_FAILED",
                detail="The operation could not be completed"
            )

    def make_page(self, page: Optional[int] = None, limit: Optional[int] = None,
                  default_limit: Optional[int] = None) -> Page:
        """规范化分页参数"""
        page = max(int(page or 1), 1)
        limit = int(limit or default_limit or self.settings.pagination_default_limit)
        limit = min(max(limit, 1), self.settings.pagination_max_limit)
        return Page(page=page, limit=limit)


class RepositoryMixin:
    """仓储混入类 - 提供常用的数据库操作"""

    async def get_by_id(
        self,
        session: AsyncSession,
        model_class,
        record_id: int
    ) -> Optional[Any]:
        """根据ID获取记录"""
        return await session.get(model_class, record_id)

    async def get_by_field(
        self,
        session: AsyncSession,
        model_class,
        field_name: str,
        field_value: Any
    ) -> Optional[Any]:
        """根据字段获取记录"""
        stmt = select(model_class).where(getattr(model_class, field_name) == field_value)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        session: AsyncSession,
        model_class,
        data: Dict[str, Any]
    ) -> Any:
        """创建记录"""
        instance = model_class(**data)
        session.add(instance)
        await session.flush()  # 获取生成的ID
        return instance

    async def update(
        self,
        session: AsyncSession,
        instance: Any,
        data: Dict[str, Any]
    ) -> Any:
        """更新记录"""
        for key, value in data.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await session.flush()
        return instance

    async def paginate(
        self,
        session: AsyncSession,
        stmt,
        page: Page,
        options: tuple = ()
    ) -> Dict[str, Any]:
        """执行分页查询，返回 {"items", "pagination"}；options 为加载选项，不参与计数"""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await session.execute(count_stmt)).scalar_one()

        result = await session.execute(stmt.options(*options).offset(page.offset).limit(page.limit))
        items: List[Any] = list(result.scalars().unique().all())

        return {"items": items, "pagination": page.describe(total)}
