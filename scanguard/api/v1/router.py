"""
API v1 router.
"""
from fastapi import APIRouter

from scanguard.api.v1.endpoints import cves, dashboard, events, health, reports, scan_results, scans, upload, vulnerabilities

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(scans.router, prefix="/scans", tags=["scans"])
api_router.include_router(scan_results.router, prefix="/scans", tags=["scan-results"])
api_router.include_router(upload.router, prefix="/upload", tags=["upload"])
api_router.include_router(vulnerabilities.router, prefix="/vulnerabilities", tags=["vulnerabilities"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(cves.router, prefix="/cves", tags=["cves"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(dashboard.maintenance_router, prefix="/maintenance", tags=["maintenance"])
