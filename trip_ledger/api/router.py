from fastapi import APIRouter

from trip_ledger.routers import (
    audit_logs,
    corrections,
    health,
    trips,
    vehicles,
)

api_router = APIRouter()
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(trips.router, prefix="/trips", tags=["Trips"])
api_router.include_router(corrections.router, prefix="/trips", tags=["Corrections"])
api_router.include_router(vehicles.router, prefix="/vehicles", tags=["Vehicles"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit Logs"])
