from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from engine.app.composition import create_engine_dependencies
from json_interface.app.core import SERVICE_NAME
from json_interface.app.routers.health import health_router
from json_interface.app.routers.processing import processing_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.bind(service_name=SERVICE_NAME, event="json_interface_starting").info("")
    dependencies = create_engine_dependencies()
    connected = False
    try:
        await dependencies.connect()
        connected = True
        app.state.settings = dependencies.settings
        app.state.processing_service = dependencies.processing_service
        yield
    finally:
        logger.bind(service_name=SERVICE_NAME, event="json_interface_stopping").info("")
        app.state.processing_service = None
        if connected:
            await dependencies.close()


app = FastAPI(
    title="Message Processing API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(processing_router)


def main() -> None:
    import uvicorn

    uvicorn.run("json_interface.app.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
