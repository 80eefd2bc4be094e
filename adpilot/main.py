from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adpilot.application.services.session_registry import get_session_registry
from adpilot.infrastructure.config.settings import get_settings
from adpilot.presentation.api.v1 import router as api_v1_router

settings = get_settings()
_log_level = settings.log_level

# ルートロガーの設定
logging.basicConfig(
    level=_log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)

logging.getLogger("adpilot").setLevel(_log_level)

# uvicorn のロガー設定
for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(_name).setLevel(_log_level)

# httpx のHTTPリクエストログを抑制（Supabase / Webhook 呼び出しごとに出るため）
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger("adpilot.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AdPilot chat API starting: env=%s log_level=%s", settings.environment, _log_level)
    yield
    # Realtime チャネルを閉じてから終了
    await get_session_registry().close_all()
    logger.info("AdPilot chat API stopped")


app = FastAPI(title="AdPilot Chat API", lifespan=lifespan)


@app.get("/health")
def health():
    return {"status": "ok"}


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
    )

app.include_router(api_v1_router, prefix="/api/v1")
