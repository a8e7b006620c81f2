import asyncio
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from globalconnect.routers import (
    auth,
    profile,
    follow,
    posts,
    comments,
    messaging,
    notifications,
    push_tokens,
    reports,
    categories,
    admin,
    policies,
    websocket,
)
from globalconnect.config import logger
from globalconnect.core.accounts import purge_expired_accounts
from globalconnect.core.database import ping_database, ensure_indexes
from globalconnect.websockets.manager import ws_manager
import dotenv

dotenv.load_dotenv()

PURGE_INTERVAL_SECONDS = 60 * 60


async def purge_loop():
    while True:
        try:
            await asyncio.to_thread(purge_expired_accounts)
        except PyMongoError as e:
            logger.error(f"Scheduled account purge failed: {e}")
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if ping_database():
        ensure_indexes()
        notifications.resume_scheduled_notifications()
    tasks = [
        asyncio.create_task(ws_manager.run_cleanup_loop()),
        asyncio.create_task(purge_loop()),
    ]
    yield
    for task in tasks:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    await notifications.cancel_scheduled_notifications()

async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


def create_app() -> FastAPI:
    app = FastAPI(title="GlobalConnect Backend", lifespan=lifespan)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.include_router(auth.router, prefix="/api/users", tags=["Auth"])
    app.include_router(profile.router, prefix="/api/profile", tags=["Profile"])
    app.include_router(follow.router, prefix="/api", tags=["Follow"])
    app.include_router(posts.router, prefix="/api/post", tags=["Posts"])
    app.include_router(comments.router, prefix="/api/comment", tags=["Comments"])
    app.include_router(messaging.router, prefix="/api", tags=["Messaging"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(push_tokens.router, prefix="/api", tags=["Push"])
    app.include_router(reports.router, prefix="/api/report", tags=["Reports"])
    app.include_router(categories.router, prefix="/api/category", tags=["Categories"])
    app.include_router(admin.router, prefix="/api/dashboard", tags=["Dashboard"])
    app.include_router(policies.router, prefix="/api", tags=["Policies"])
    app.include_router(websocket.router, prefix="/ws", tags=["ws"])

    @app.get("/")
    async def read_root():
        return {"message": "GlobalConnect backend is running"}

    return app


app = create_app()

# to start: uvicorn globalconnect.main:app --reload
