"""
API Router

Versioned API routes.
"""

from fastapi import APIRouter

from datenassistent.api.v1 import audit_logs, tools

router = APIRouter()

router.include_router(tools.router, prefix="/tools", tags=["Tools"])
router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit"])
