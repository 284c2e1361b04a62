from fastapi import APIRouter

from cortex.services.maintenance import get_maintenance_status

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


@router.get("/status")
def maintenance_status():
    return get_maintenance_status().to_dict()
