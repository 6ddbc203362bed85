"""
HTTP server for the posprint relay using FastAPI.
Public endpoint that accepts {email, message} submissions.
"""

import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from posprint.domain.ports import RelayError
from posprint.domain.schema import HealthStatus
from posprint.services.ingestion_service import IngestionService
from posprint.telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "content-type",
    "Access-Control-Allow-Methods": "OPTIONS,POST",
}


def build_response(status_code: int, message: str) -> JSONResponse:
    """JSON {message} response carrying the CORS headers."""
    return JSONResponse(
        status_code=status_code,
        content={"message": message},
        headers=CORS_HEADERS
    )


class RelayAPI:
    """
    FastAPI application for the ingestion path.
    Maps domain errors to status codes with generic messages only.
    """

    def __init__(
        self,
        ingestion_service: IngestionService,
        title: str = "posprint relay",
        version: str = "1.0.0"
    ):
        """
        Initialize FastAPI application.

        Args:
            ingestion_service: Service handling submissions
            title: API title
            version: API version
        """
        self.ingestion_service = ingestion_service
        self.metrics = MetricsLogger("http")

        self.app = FastAPI(
            title=title,
            version=version,
            description="Accepts short messages and relays them to a receipt printer",
            docs_url=None,
            redoc_url=None
        )

        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self) -> None:

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            start_time = time.time()
            client_ip = request.client.host if request.client else "unknown"

            logger.info(
                f"Request started: {request.method} {request.url.path}",
                extra={
                    "component": "http_server",
                    "method": request.method,
                    "path": request.url.path,
                    "client_ip": client_ip
                }
            )

            response = await call_next(request)

            self.metrics.log_http_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
                client_ip=client_ip
            )
            return response

    def _setup_routes(self) -> None:

        @self.app.options("/", status_code=204)
        async def preflight() -> Response:
            """CORS preflight."""
            return Response(status_code=204, headers=CORS_HEADERS)

        @self.app.post(
            "/",
            status_code=201,
            summary="Submit Message",
            description="Submit a message to be printed"
        )
        async def submit_message(request: Request) -> JSONResponse:
            body = await request.body()

            try:
                result = await self.ingestion_service.submit(
                    body,
                    forwarded_for=request.headers.get("x-forwarded-for"),
                    peer_address=request.client.host if request.client else None
                )
            except RelayError:
                raise
            except Exception as e:
                logger.error(
                    f"Unexpected error processing submission: {e}",
                    exc_info=True,
                    extra={"component": "http_server"}
                )
                return build_response(500, "Internal server error.")

            return build_response(result.status_code, result.message)

        @self.app.get("/healthz", summary="Health Check")
        async def health_check() -> dict:
            """Basic health check - always returns OK if the process is running."""
            return {
                "status": "ok",
                "service": "posprint-api",
                "timestamp": time.time()
            }

        @self.app.get("/readyz", summary="Readiness Check", response_model=HealthStatus)
        async def readiness_check():
            """Checks store and channel connectivity. Returns 503 if not ready."""
            checks = {}
            try:
                store_health = await self.ingestion_service.store.check_health()
                checks.update(store_health.checks)
                store_ok = store_health.status == "healthy"

                channel_ok = await self.ingestion_service.publisher.check_health()
                checks["channel"] = "ok" if channel_ok else "failed"
            except Exception as e:
                logger.error(f"Readiness check failed: {e}")
                store_ok = channel_ok = False
                checks["general"] = f"error_{e}"

            status = HealthStatus(
                status="healthy" if store_ok and channel_ok else "unhealthy",
                checks=checks
            )
            if status.status != "healthy":
                logger.warning(
                    f"Service not ready: {status.status}",
                    extra={"component": "http_server", "checks": checks}
                )
                return JSONResponse(status_code=503, content=status.model_dump(mode="json"))
            return status

    def _setup_exception_handlers(self) -> None:

        @self.app.exception_handler(RelayError)
        async def relay_exception_handler(request: Request, exc: RelayError):
            log = logger.error if exc.status_code >= 500 else logger.warning
            log(
                f"Submission rejected: {exc}",
                extra={
                    "component": "http_server",
                    "error_type": type(exc).__name__,
                    "status_code": exc.status_code,
                    "path": request.url.path
                }
            )
            return build_response(exc.status_code, exc.public_message)
