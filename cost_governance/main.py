import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response

from cost_governance import __version__
from cost_governance.api.routes_health import router as health_router
from cost_governance.api.routes_pricing import router as pricing_router
from cost_governance.api.routes_quota import router as quota_router
from cost_governance.config.logger import get_logger, setup_logging
from cost_governance.dependencies import get_exchange_rates

setup_logging()
LOGGER = get_logger("cost_governance.request")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_exchange_rates.cache_info().currsize:
        get_exchange_rates().close()


app = FastAPI(title="AI Cost Governance", version=__version__, lifespan=lifespan)


def _json_pretty(obj: Any) -> str:
    try:
        return json.dumps(obj, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id

    # Quiet health checks: skip verbose logging to reduce noise.
    if request.url.path == "/health":
        return await call_next(request)

    LOGGER.info(
        "Incoming request: %s %s (Request ID: %s)",
        request.method,
        request.url,
        request_id,
    )

    response = await call_next(request)

    resp_body = b""
    async for chunk in response.body_iterator:
        resp_body += chunk

    LOGGER.info(
        "Response status: %s (Request ID: %s)",
        response.status_code,
        request_id,
    )
    if resp_body and LOGGER.isEnabledFor(logging.DEBUG):
        try:
            response_json: Any = json.loads(resp_body.decode("utf-8"))
        except ValueError:
            response_json = resp_body.decode("utf-8", errors="ignore")
        LOGGER.debug(
            "Response body (Request ID: %s):\n%s",
            request_id,
            _json_pretty(response_json),
        )

    headers = dict(response.headers)
    headers["x-request-id"] = request_id
    return Response(
        content=resp_body,
        status_code=response.status_code,
        headers=headers,
        media_type=response.media_type,
        background=response.background,
    )


app.include_router(health_router)
app.include_router(pricing_router)
app.include_router(quota_router)
