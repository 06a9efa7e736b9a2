from prometheus_fastapi_instrumentator import Instrumentator

from timeclock import create_app
from timeclock.core.config import settings
from timeclock.core.logging import setup_logging

setup_logging(settings.LOG_LEVEL)
app = create_app(settings=settings)

if settings.METRICS_ENABLED:
    Instrumentator(excluded_handlers=["/metrics", "/health", "/live/.*", "/static/.*"]).instrument(app).expose(
        app, include_in_schema=False
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
