from luckygame.handlers.admin import router as admin_router
from luckygame.handlers.core import router as core_router
from luckygame.handlers.withdrawals import router as withdrawals_router

routers = [
    core_router,
    admin_router,
    withdrawals_router,
]
