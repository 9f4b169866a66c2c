"""
Main FastAPI application bootstrap.
Configures middleware and includes routers.
"""
import logging

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from provisioner.core.config import config
from provisioner.api.workflow import router as workflow_router
from provisioner.api.clusters import router as clusters_router


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info("Platform backend at %s", config.PLATFORM_API_BASE_URL)


app = FastAPI(
    title="Cloud Provisioner",
    description="Multi-cloud provisioning wizard: cost estimation, IaC preview and deployment tracking",
)

app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    max_age=config.SESSION_MAX_AGE,
    same_site="lax",
    https_only=False,  # Set to True in production with HTTPS
)

app.include_router(workflow_router)
app.include_router(clusters_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("provisioner.main:app", host=config.HOST, port=config.PORT)
