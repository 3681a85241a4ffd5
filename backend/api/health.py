"""Health check endpoint — verifies database connectivity and template presence."""

from fastapi import APIRouter, Depends

from backend.api.deps import get_template_store
from backend.core import storage
from backend.core.template_store import TemplateStore

router = APIRouter()


@router.get("/health")
async def health_check(store: TemplateStore = Depends(get_template_store)):
    """Check backend status, database reachability and the template artifact."""
    db_ok = storage.check_connection()
    template_ok = store.exists()

    return {
        "status": "ok" if db_ok and template_ok else "degraded",
        "services": {
            "database": "ok" if db_ok else "error",
            "template": "ok" if template_ok else "missing",
        }
    }
