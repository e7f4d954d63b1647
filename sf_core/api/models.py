"""
API 请求/响应模型
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field

from sf_core.models.values import MAX_STOCK_QTY

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    ok: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    error: Optional[Dict[str, Any]] = Field(default=None, description="错误信息（RFC7807 Problem Details）")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="元数据")

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ApiResponse[T]":
        """创建成功响应"""
        return cls(ok=True, data=data, metadata=metadata)


# ========== 购物车 ==========

class AddCartItemRequest(BaseModel):
    """加入购物车"""
    product_id: int = Field(description="商品ID")
    quantity: int = Field(default=1, description="数量")


class UpdateCartItemRequest(BaseModel):
    """修改购物车行数量（<= 0 表示移除）"""
    quantity: int = Field(description="数量")


# ========== 订单 ==========

class CreateOrderRequest(BaseModel):
    """下单请求；地址字段由服务层校验"""
    address: Optional[Dict[str, Any]] = Field(default=None, description="收货地址")


class UpdateOrderStatusRequest(BaseModel):
    """修改订单状态"""
    status: str = Field(description="目标状态")


# ========== 商品与库存 ==========

class CreateProductRequest(BaseModel):
    """创建商品"""
    sku: str = Field(description="SKU（自动转大写）")
    name: str = Field(description="商品名称")
    description: Optional[str] = Field(default=None, description="商品描述")
    price: Decimal = Field(description="售价")
    stock_qty: int = Field(default=0, ge=0, le=MAX_STOCK_QTY, description="初始库存")
    is_active: bool = Field(default=True, description="是否上架")


class UpdateProductRequest(BaseModel):
    """修改商品（库存不可在此修改）"""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    is_active: Optional[bool] = None
    stock_qty: Optional[int] = None


class UpdateStockRequest(BaseModel):
    """调整库存"""
    qty_change: int = Field(ge=-MAX_STOCK_QTY, le=MAX_STOCK_QTY, description="变动数量，正数入库，负数出库")
    type: str = Field(description="类型：restock/sale/adjustment/return")
    note: Optional[str] = Field(default=None, description="备注")


class StockCheckResponse(BaseModel):
    """库存校验结果"""
    product_id: int
    sku: str
    available: bool
    stock_qty: int
    requested: int


class ReconciliationItem(BaseModel):
    """库存核对结果"""
    product_id: int
    sku: str
    stock_qty: int
    ledger_total: int
    drift: int
    consistent: bool


class ReconciliationReport(BaseModel):
    """全部商品核对报告"""
    products: List[ReconciliationItem]
    checked: int
    drifted: int
