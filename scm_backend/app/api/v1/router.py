from fastapi import APIRouter

from scm_backend.app.api.v1.endpoints.health import router as health_router
from scm_backend.app.api.v1.endpoints.auth import router as auth_router
from scm_backend.app.api.v1.endpoints.roles import router as roles_router
from scm_backend.app.api.v1.endpoints.users import router as users_router
from scm_backend.app.api.v1.endpoints.stores import router as stores_router
from scm_backend.app.api.v1.endpoints.items import router as items_router
from scm_backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from scm_backend.app.api.v1.endpoints.supplier_items import router as supplier_items_router
from scm_backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from scm_backend.app.api.v1.endpoints.stock_requests import router as stock_requests_router
from scm_backend.app.api.v1.endpoints.goods_receipts import router as goods_receipts_router
from scm_backend.app.api.v1.endpoints.inventory_batches import router as inventory_batches_router
from scm_backend.app.api.v1.endpoints.inventory_transactions import router as inventory_transactions_router
from scm_backend.app.api.v1.endpoints.sales import router as sales_router
from scm_backend.app.api.v1.endpoints.reports import router as reports_router
from scm_backend.app.api.v1.endpoints.notifications import router as notifications_router
from scm_backend.app.api.v1.endpoints.temperature import router as temperature_router
from scm_backend.app.api.v1.endpoints.admin import router as admin_router
from scm_backend.app.api.v1.endpoints.tasks import router as tasks_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(auth_router, tags=["auth"])
router.include_router(roles_router, tags=["roles"])
router.include_router(users_router, tags=["users"])
router.include_router(stores_router, tags=["stores"])
router.include_router(items_router, tags=["items"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(supplier_items_router, tags=["supplier_items"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(stock_requests_router, tags=["stock_requests"])
router.include_router(goods_receipts_router, tags=["goods_receipts"])
router.include_router(inventory_batches_router, tags=["inventory_batches"])
router.include_router(inventory_transactions_router, tags=["inventory_transactions"])
router.include_router(sales_router, tags=["sales"])
router.include_router(reports_router, tags=["reports"])
router.include_router(notifications_router, tags=["notifications"])
router.include_router(temperature_router, tags=["temperature"])
router.include_router(admin_router, tags=["admin"])
router.include_router(tasks_router, tags=["tasks"])
