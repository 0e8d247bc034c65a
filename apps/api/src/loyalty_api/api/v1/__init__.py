from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    jobs,
    ledger,
    stats,
    transactions,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(customers.router)
router.include_router(transactions.router)
router.include_router(ledger.router)
router.include_router(jobs.router)
router.include_router(stats.router)
