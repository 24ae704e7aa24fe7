"""
Health Check Endpoints.

This module provides system status endpoints used for monitoring and
deployment verification, including whether storage runs degraded.
"""

from dataclasses import asdict

from fastapi import APIRouter

from ...services.deps import CoordinatorDep

router = APIRouter()


@router.get(
    "/health",
    summary="Health Check",
    description="Check the operational status of the API server and its storage providers.",
    response_description="Status object.",
)
async def health_check(coordinator: CoordinatorDep):
    """
    Health check endpoint.

    ``status`` is ``degraded`` when any store has fallen back to in-process memory.
    """
    storage = {name: asdict(health) for name, health in coordinator.storage_health().items()}
    degraded = any(item["degraded"] for item in storage.values())
    return {"status": "degraded" if degraded else "ok", "storage": storage}


@router.get(
    "/version",
    summary="Get Version",
    description="Retrieve version information for the API server.",
    response_description="Version object.",
)
async def version():
    return {"version": "0.1.0", "schema_version": "v1"}
