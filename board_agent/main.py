import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from board_agent.config import settings
from board_agent.routes.agent_routes import router as agent_router
from board_agent.routes.health import router as health_router
from board_agent.tracing.setup import init_tracing, shutdown_tracing

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_tracing()
    yield
    shutdown_tracing()


app = FastAPI(title="CollabBoard AI", version="1.0.0", lifespan=lifespan)

app.include_router(health_router)
app.include_router(agent_router, prefix="/agent")
