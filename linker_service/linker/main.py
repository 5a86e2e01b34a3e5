from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import time
import asyncio
import logging

from linker.database import engine, Base
from linker.routers import auth, tokens, links, files, analytics, public
from linker.config import settings
from linker.rate_limit import RateLimiter
from linker.storage import create_object_store

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управляет жизненным циклом приложения"""
    logger.info("Запуск приложения...")

    app.state.rate_limiter = RateLimiter()
    app.state.object_store = create_object_store(settings)

    sweep_task = asyncio.create_task(periodically_sweep_rate_limits(app.state.rate_limiter))

    app.state.background_tasks = {
        "rate_limit_sweep": sweep_task
    }

    yield

    logger.info("Завершение работы приложения...")

    for name, task in app.state.background_tasks.items():
        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.info("Задача %s остановлена", name)


Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.APP_NAME,
    description="API для сокращения ссылок и обмена файлами",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(tokens.router)
app.include_router(links.router)
app.include_router(files.router)
app.include_router(analytics.router)
app.include_router(public.router)


async def periodically_sweep_rate_limits(limiter: RateLimiter):
    """Периодически удаляет неактивные записи лимитера загрузок"""
    while True:
        try:
            await asyncio.sleep(settings.RATE_LIMIT_SWEEP_INTERVAL)
            limiter.sweep()
        except asyncio.CancelledError:
            logger.info("Задача очистки лимитера отменена")
            break
        except Exception:
            logger.error("Ошибка при очистке лимитера", exc_info=True)


LOGGED_PREFIXES = ("/api/", f"/{settings.LINK_PREFIX}/", f"/{settings.FILE_PREFIX}/")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    if request.url.path.startswith(LOGGED_PREFIXES):
        logger.info(
            "%s %s - %d - %.4fs",
            request.method, request.url.path, response.status_code, process_time
        )

    return response


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Linker API",
        "docs_url": "/docs",
        "version": "1.0.0"
    }


if __name__ == "__main__":
    uvicorn.run("linker.main:app", host="0.0.0.0", port=8000, reload=True)
