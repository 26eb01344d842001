"""Enrollment Token API Routes - Route registration only."""

from fastapi import APIRouter

from fleetprov.api.v1 import TOKEN_PREFIX
from fleetprov.api.v1.enrollment import api

router = APIRouter()
router.include_router(api.router, prefix=TOKEN_PREFIX, tags=["enrollment"])
