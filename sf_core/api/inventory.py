"""
库存核对 API 路由
"""
from fastapi import APIRouter, Depends

from sf_core.models import User
from sf_core.services import InventoryLedger
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import handle_errors
from .auth import require_admin
from .models import ApiResponse, ReconciliationReport

router = APIRouter(prefix="/inventory")
logger = get_logger(__name__)


async def get_inventory_ledger() -> InventoryLedger:
    """依赖注入：获取库存流水服务"""
    return InventoryLedger()


@router.get("/reconcile", response_model=ApiResponse[ReconciliationReport])
@handle_errors(logger)
async def reconcile_inventory(
    admin: User = Depends(require_admin),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    """核对全部商品：库存应等于流水合计"""
    report = await ledger.reconcile_all()
    return ApiResponse.success(report)
