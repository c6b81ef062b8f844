# app/main.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from app.core.config import settings
from app.api.endpoints import check, payment
from app.x402.errors import BadRequest
from app.x402.responses import create_error_response
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json" # Standard location for OpenAPI spec
)

# Include the API router(s)
# The prefix ensures all routes start with /api/v1
app.include_router(check.router, prefix=settings.API_V1_STR, tags=["check"])
app.include_router(payment.router, prefix=settings.API_V1_STR, tags=["payment"])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 BadRequest in the gateway's error format."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "invalid request"

    logger.info(f"Rejected malformed request to {request.url.path}: {message}")
    return create_error_response(BadRequest(message))


@app.get("/", summary="Health Check", tags=["default"])
def read_root():
    """ Basic health check endpoint. """
    logger.info("Root endpoint '/' accessed.")
    return {"status": "ok", "message": f"Welcome to {settings.PROJECT_NAME}"}
