"""Certificate Authority API Routes - Route registration only."""

from fastapi import APIRouter

from fleetprov.api.v1 import CERT_PREFIX
from fleetprov.api.v1.certificates import api

router = APIRouter()
router.include_router(api.router, prefix=CERT_PREFIX, tags=["certificates"])
