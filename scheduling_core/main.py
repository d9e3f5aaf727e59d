from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scheduling_core.config import settings
from scheduling_core.core.errors import SchedulingError
from scheduling_core.db import Base, engine
from scheduling_core.route_logging import EndpointNameRoute
from scheduling_core.routers import contracts, reschedule, tutor_centers, users
from scheduling_core.services.observability_counters import snapshot_observability_events

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        'request_failed path=%s method=%s error=%s code=%s',
        request.url.path,
        request.method,
        exc.kind,
        exc.code,
        extra={'context': exc.context},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_exception_handler(SchedulingError, scheduling_error_handler)


@app.middleware('http')
async def slow_request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000.0
    if duration_ms >= settings.metrics_slow_ms:
        logging.getLogger('scheduling_core.request').info(
            'request_slow path=%s method=%s status_code=%s duration_ms=%.2f',
            request.url.path,
            request.method,
            response.status_code,
            duration_ms,
        )
    return response


app.include_router(contracts.router)
app.include_router(users.router)
app.include_router(reschedule.router)
app.include_router(reschedule.refunds_router)
app.include_router(tutor_centers.router)


@app.get('/')
def health():
    return {'app': settings.app_name, 'status': 'ok'}


@app.get('/health')
def healthcheck():
    return {'status': 'ok', 'events_24h': snapshot_observability_events()}
