import asyncio
from fastapi import FastAPI, Request, Header, HTTPException
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import get_settings
from app.whatsapp_bot.bot import handle_whatsapp_update, initialize_bot, shutdown_bot
from app.whatsapp_bot.logging_config import bot_logger as logger

app = FastAPI(
    title="Whatsbot",
    description="Multi-tenant WhatsApp bot: assistant, expenses and daily briefing",
    version="0.1.0"
)

# Rate limiter for the webhook (per gateway IP)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Lifecycle events
@app.on_event("startup")
async def startup_event():
    """Initialize router and background tasks on startup."""
    logger.info("[STARTUP] Initializing WhatsApp bot...")
    await initialize_bot()
    logger.info("[STARTUP] Bot ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background tasks on application shutdown."""
    logger.info("[SHUTDOWN] Shutting down WhatsApp bot...")
    await shutdown_bot()
    logger.info("[SHUTDOWN] Bot stopped")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": "0.1.0"
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Whatsbot",
        "webhook": "/whatsapp/webhook"
    }


# WhatsApp gateway webhook endpoint
@app.post("/whatsapp/webhook")
@limiter.limit("300/minute")
async def whatsapp_webhook(
    request: Request,
    x_webhook_secret: str = Header(None)
):
    """
    Webhook endpoint for gateway deliveries.

    Body is a single message envelope or {"messages": [envelope, ...]}.
    """
    settings = get_settings()

    # Verify secret if configured
    if settings.whatsapp_webhook_secret:
        if x_webhook_secret != settings.whatsapp_webhook_secret:
            raise HTTPException(status_code=403, detail="Invalid webhook secret")

    payload = await request.json()

    # Handle in background (fire-and-forget for fast 200 OK)
    asyncio.create_task(handle_whatsapp_update(payload))

    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
