from fastapi import FastAPI
import logging
import os

from scenehost.api.routes import router
from scenehost.singleton import get_host
from scenehost.startup import init_host_for_app

app = FastAPI(title="scenehost", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=os.environ.get("SCENEHOST_LOG_LEVEL", "DEBUG").upper())
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    host = init_host_for_app()
    logger.info("scene host ready (base=%s)", host.settings.scene_base_url)


@app.on_event("shutdown")
async def _shutdown() -> None:
    get_host().shell.close()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "scenehost", "version": "0.1.0"}
