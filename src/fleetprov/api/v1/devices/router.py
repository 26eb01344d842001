"""Device Registry API Routes - Route registration only."""

from fastapi import APIRouter

from fleetprov.api.v1 import DEVICES_PREFIX
from fleetprov.api.v1.devices import api

router = APIRouter()
router.include_router(api.router, prefix=DEVICES_PREFIX, tags=["devices"])
