"""
商品与库存 API 路由
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query

from sf_core.models import User
from sf_core.services import ProductCatalogService, InventoryLedger
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import handle_errors
from .auth import require_admin
from .models import (
    ApiResponse, CreateProductRequest, UpdateProductRequest, UpdateStockRequest,
    StockCheckResponse, ReconciliationItem
)

router = APIRouter(prefix="/products")
logger = get_logger(__name__)


async def get_catalog_service() -> ProductCatalogService:
    """依赖注入：获取商品目录服务"""
    return ProductCatalogService()


async def get_inventory_ledger() -> InventoryLedger:
    return InventoryLedger()


@router.post("", status_code=201)
@handle_errors(logger)
async def create_product(
    body: CreateProductRequest,
    admin: User = Depends(require_admin),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """创建商品（管理员）"""
    product = await catalog.create_product(body.model_dump())
    return ApiResponse.success(product)


@router.get("")
@handle_errors(logger)
async def list_products(
    page: int = Query(1, ge=1, description="页码"),
    limit: Optional[int] = Query(None, ge=1, description="每页数量"),
    min_price: Optional[Decimal] = Query(None, ge=0, description="最低价"),
    max_price: Optional[Decimal] = Query(None, ge=0, description="最高价"),
    search: Optional[str] = Query(None, description="关键词（名称/描述/SKU）"),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """在售商品列表"""
    result = await catalog.list_products(
        page=page, limit=limit, min_price=min_price, max_price=max_price, search=search
    )
    return ApiResponse.success(result["items"], metadata={"pagination": result["pagination"]})


@router.get("/{product_id}")
@handle_errors(logger)
async def get_product(
    product_id: int,
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    return ApiResponse.success(await catalog.get_product(product_id))


@router.patch("/{product_id}")
@handle_errors(logger)
async def update_product(
    product_id: int,
    body: UpdateProductRequest,
    admin: User = Depends(require_admin),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """修改商品信息（管理员，不含库存）"""
    product = await catalog.update_product(product_id, body.model_dump(exclude_unset=True))
    return ApiResponse.success(product)


@router.delete("/{product_id}")
@handle_errors(logger)
async def deactivate_product(
    product_id: int,
    admin: User = Depends(require_admin),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """下架商品（管理员）"""
    return ApiResponse.success(await catalog.deactivate_product(product_id))


@router.patch("/{product_id}/stock")
@handle_errors(logger)
async def update_stock(
    product_id: int,
    body: UpdateStockRequest,
    admin: User = Depends(require_admin),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """调整库存（管理员），同时写入库存流水"""
    product = await catalog.update_stock(product_id, body.qty_change, body.type, body.note)
    return ApiResponse.success(product)


@router.get("/{product_id}/stock", response_model=ApiResponse[StockCheckResponse])
@handle_errors(logger)
async def check_stock(
    product_id: int,
    quantity: int = Query(1, description="需要的数量"),
    catalog: ProductCatalogService = Depends(get_catalog_service)
):
    """库存校验"""
    return ApiResponse.success(await catalog.check_stock(product_id, quantity))


@router.get("/{product_id}/inventory")
@handle_errors(logger)
async def get_inventory_history(
    product_id: int,
    type: Optional[str] = Query(None, description="流水类型"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    """库存流水（管理员）"""
    result = await ledger.get_inventory_history(product_id, tx_type=type, page=page, limit=limit)
    return ApiResponse.success(
        {"product": result["product"], "transactions": result["transactions"]},
        metadata={"pagination": result["pagination"]}
    )


@router.get("/{product_id}/reconcile", response_model=ApiResponse[ReconciliationItem])
@handle_errors(logger)
async def reconcile_product(
    product_id: int,
    admin: User = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    """核对单个商品的库存与流水"""
    return ApiResponse.success(await ledger.reconcile_product(product_id))
