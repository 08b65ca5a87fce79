from fastapi import APIRouter

from markov_cea.data.registry import TableRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check():
    registry = TableRegistry.get()
    table_status = (
        {"status": "loaded", "count": len(registry.tables)}
        if registry.is_loaded else {"status": "not_loaded"}
    )
    return {
        "status": "ok",
        "tables": table_status,
    }
