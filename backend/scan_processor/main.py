"""FastAPI application entry point — hosts the Kafka consumer and the health check."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from scan_processor.core.config import settings
from scan_processor.core.context import ServiceContext
from scan_processor.core.logging import get_logger, setup_logging
from scan_processor.core.tracing import setup_tracing
from scan_processor.messaging.consumer import KafkaEventConsumer
from scan_processor.messaging.dispatcher import MessageDispatcher
from scan_processor.services.processor import ProcessorService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else settings.LOG_LEVEL)
    setup_tracing()
    logger = get_logger("startup")
    logger.info("Submission processor starting", env=settings.APP_ENV)

    ctx = ServiceContext.create(settings)
    consumer = KafkaEventConsumer(settings)
    dispatcher = MessageDispatcher(ProcessorService(ctx), consumer, settings)

    try:
        await consumer.start()
    except Exception:
        logger.exception("Kafka consumer failed to start")
        await ctx.aclose()
        raise
    consumer.start_consuming(dispatcher.handle_batch)

    app.state.ctx = ctx
    app.state.consumer = consumer
    yield

    logger.info("Submission processor shutting down")
    await consumer.stop()
    await ctx.aclose()


app = FastAPI(
    title="Submission Processor",
    description="Stages submission files through antivirus scanning",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health-check endpoint reflecting broker connection liveness."""
    consumer: KafkaEventConsumer | None = getattr(app.state, "consumer", None)
    if consumer is not None and await consumer.check():
        return JSONResponse({"status": "ok", "env": settings.APP_ENV})
    return JSONResponse({"status": "unhealthy", "env": settings.APP_ENV}, status_code=503)
