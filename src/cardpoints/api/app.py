import math

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cardpoints.api.routes.health import router as health_router
from cardpoints.api.routes.rewards import router as rewards_router
from cardpoints.api.routes.rules import router as rules_router
from cardpoints.config import settings
from cardpoints.logging_config import configure_logging

app = FastAPI(title="CardPoints API", version="0.1.0")
app.include_router(health_router)
app.include_router(rules_router)
app.include_router(rewards_router)


def _json_safe(value):
    # Rejected Infinity/NaN inputs are echoed back in the error detail.
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    return value


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": _json_safe(jsonable_encoder(exc.errors()))})


def run() -> None:
    configure_logging(settings.log_level)
    uvicorn.run("cardpoints.api.app:app", host=settings.app_host, port=settings.app_port, reload=False)
