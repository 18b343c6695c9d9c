"""FastAPI application entrypoint for the gateway service.

The gateway proxies requests to the independent services over HTTP instead
of importing them.
"""

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from libs.common.config import get_settings
from libs.common.error_handler import (
    ERROR_STATUS,
    ErrorCode,
    add_exception_handlers,
    error_payload,
)
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from services.gateway_service.app import clients

logger = get_logger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = get_settings()
    app = FastAPI(
        title="Gateway Service",
        version="0.1.0",
        description="API gateway in front of the members, communications and approvals services.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple readiness endpoint."""
        return {"status": "ok"}

    @app.api_route("/api/v1/members/{path:path}", methods=PROXY_METHODS)
    async def proxy_members(path: str, request: Request):
        """Proxy all /api/v1/members/* requests to members service."""
        return await proxy_request(clients.members_client, f"/members/{path}", request)

    @app.api_route("/api/v1/communications/{path:path}", methods=PROXY_METHODS)
    async def proxy_communications(path: str, request: Request):
        """Proxy all /api/v1/communications/* requests to communications service."""
        return await proxy_request(
            clients.communications_client, f"/communications/{path}", request
        )

    @app.api_route("/api/v1/approvals/{path:path}", methods=PROXY_METHODS)
    async def proxy_approvals(path: str, request: Request):
        """Proxy all /api/v1/approvals/* requests to approvals service."""
        return await proxy_request(
            clients.approvals_client, f"/approvals/{path}", request
        )

    return app


def _filter_service_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Strip hop-by-hop headers that FastAPI/starlette manages."""
    hop_by_hop = {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
        "content-encoding",
        "host",
        "content-type",
    }
    return [(k, v) for k, v in headers.items() if k.lower() not in hop_by_hop]


async def proxy_request(client: clients.ServiceClient, path: str, request: Request):
    """Generic proxy function to forward requests to microservices."""
    content_body = None
    if request.method in ("POST", "PUT", "PATCH"):
        body_bytes = await request.body()
        if body_bytes:
            content_body = body_bytes

    # Content-Length and Host are set by httpx; the session cookie and bearer
    # token pass through untouched.
    headers = {
        k: v
        for k, v in request.headers.items()
        if k.lower() not in ("content-length", "host")
    }

    if request.url.query:
        path = f"{path}?{request.url.query}"

    try:
        service_response = await client.request(
            request.method, path, content=content_body, headers=headers
        )
    except httpx.RequestError as exc:
        logger.error("Upstream request to %s failed: %s", path, exc)
        return JSONResponse(
            status_code=ERROR_STATUS[ErrorCode.SERVICE_UNAVAILABLE],
            content=error_payload(ErrorCode.SERVICE_UNAVAILABLE),
            headers={"Cache-Control": "no-store"},
        )

    forward_headers = dict(_filter_service_headers(service_response.headers))

    if service_response.status_code == 204:
        return Response(status_code=204, headers=forward_headers)

    content_type = service_response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = service_response.json()
        except ValueError:
            # Fall back to raw bytes if the payload is not valid JSON.
            pass
        else:
            return JSONResponse(
                content=payload,
                status_code=service_response.status_code,
                headers=forward_headers,
            )

    return Response(
        content=service_response.content,
        status_code=service_response.status_code,
        media_type=content_type or None,
        headers=forward_headers,
    )


app = create_app()
