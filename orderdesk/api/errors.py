"""Map domain errors to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from orderdesk.errors import OrderDeskError, ValidationError
from orderdesk.logging import get_logger, LogStream

logger = get_logger(LogStream.API)


def install_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(OrderDeskError)
    async def _order_desk_error(request: Request, exc: OrderDeskError) -> JSONResponse:
        logger.info("Request refused", extra={
            "path": request.url.path,
            "error": exc.kind,
            "status_code": exc.http_status,
            "reason": exc.reason,
        })
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        error = ValidationError("Malformed request", problems=problems)
        return JSONResponse(status_code=error.http_status, content=error.to_dict())
