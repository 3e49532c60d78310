from fastapi import APIRouter

from rentmatch.api.v1.matches import router as matches_router
from rentmatch.api.v1.pool import router as pool_router

api_router = APIRouter()

api_router.include_router(pool_router)
api_router.include_router(matches_router)

@api_router.get("/", tags=["Root"])
async def api_root() -> dict:

    return {
        "success": True,
        "data": {
            "message": "RentMatch Engine API v1",
            "version": "1.0.0",
        },
        "error": None,
    }
