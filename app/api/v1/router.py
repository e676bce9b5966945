from fastapi import APIRouter
from app.api.v1.endpoints import webhooks, businesses, leads, sequences, enrollments, notifications, cron

api_router = APIRouter()
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(businesses.router, prefix="/businesses", tags=["businesses"])
api_router.include_router(leads.router, prefix="/leads", tags=["leads"])
api_router.include_router(sequences.router, prefix="/sequences", tags=["sequences"])
api_router.include_router(enrollments.router, prefix="/enrollments", tags=["enrollments"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
