from fastapi import APIRouter

from app.api.v1.routes import auth, subscription, templates, webhook, websites

router = APIRouter()
router.include_router(auth.router, prefix="/auth")
router.include_router(webhook.router, prefix="/webhook")
router.include_router(subscription.router, prefix="/subscriptions")
router.include_router(templates.router, prefix="/templates")
router.include_router(websites.router, prefix="/websites")
