from fastapi import APIRouter

from bogofit.api.endpoints.ai_generation import router as ai_generation
from bogofit.api.endpoints.virtual_fitting import router as virtual_fitting

api_router = APIRouter()

api_router.include_router(virtual_fitting)
api_router.include_router(ai_generation)
