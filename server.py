"""FastMCP server for devotional reflections: verse search and background reflection jobs."""

import json
import logging

from fastmcp import FastMCP
from fastmcp.server.auth.providers.github import GitHubProvider
from fastmcp.server.dependencies import get_http_request
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from devotional.config import settings
from devotional.errors import InvalidRequest, TopicRejected
from devotional.models import RequestClass
from devotional.services import rate_limiter, reflection_job_service
from devotional.tools import (
    reflection_start,
    reflection_status,
    reflection_wait,
    scripture_search,
)

logging.basicConfig(
    level=settings.devotional_log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# Suppress noisy MCP streamable_http ClosedResourceError logs (known issue with stateless mode)
# See: https://github.com/modelcontextprotocol/python-sdk/issues/1658
logging.getLogger("mcp.server.streamable_http").setLevel(logging.CRITICAL)
logger = logging.getLogger("devotional.server")

# GitHub OAuth guards the MCP transport only; browser routes below stay public
auth = None
if settings.github_client_id and settings.github_client_secret:
    auth = GitHubProvider(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        base_url=f"http://localhost:{settings.devotional_port}",
    )

# Initialize FastMCP server (stateless for serverless-style deployment)
mcp = FastMCP(
    "devotional",
    auth=auth,
    stateless_http=True,
    json_response=True,
    mask_error_details=True,
)

# Registered for every method so unsupported ones get a JSON 405 with CORS headers
ROUTE_METHODS = ["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"]


# Health check endpoint
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> PlainTextResponse:
    """Health check endpoint for container orchestration."""
    return PlainTextResponse("OK")


def _cors_headers(methods: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.devotional_cors_origin,
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": methods,
    }


def _client_key(request: Request) -> str:
    """Best-effort client identity for rate limiting."""
    client_ip = request.headers.get("client-ip", "").strip()
    if client_ip:
        return client_ip
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    if request.client and request.client.host:
        return request.client.host
    return "unknown-ip"


def _error(status_code: int, error: str, message: str, headers: dict, **extra) -> JSONResponse:
    return JSONResponse(
        {"error": error, "message": message, **extra},
        status_code=status_code,
        headers=headers,
    )


def _method_not_allowed(headers: dict) -> JSONResponse:
    return JSONResponse({"error": "Method not allowed"}, status_code=405, headers=headers)


def _rate_limited(
    request: Request,
    request_class: RequestClass,
    headers: dict,
    message: str = "Please try again in a minute",
) -> JSONResponse | None:
    """429 response if the client is over its budget for this class, else None."""
    key = _client_key(request)
    if rate_limiter.check(key, request_class):
        return None
    retry_after = rate_limiter.retry_after(key, request_class)
    return _error(
        429,
        "Too many requests",
        message,
        {**headers, "Retry-After": str(retry_after)},
    )


async def _read_json(request: Request) -> dict:
    body = await request.body()
    if not body:
        raise InvalidRequest("missing request body")
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise InvalidRequest("request body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidRequest("request body must be a JSON object")
    return data


def _housekeeping() -> None:
    """Opportunistic cleanup piggybacked on incoming requests."""
    reflection_job_service.sweep()
    rate_limiter.purge_expired()


@mcp.custom_route("/api/generate-reflection", methods=ROUTE_METHODS)
async def generate_reflection_endpoint(request: Request) -> Response:
    """Verse search (synchronous) or reflection job creation.

    Body: ``{"type": "SEARCH_VERSES", "query": str}`` or
    ``{"type": "GENERATE_REFLECTION", "topic": str, "verses": [...]}``.
    """
    headers = _cors_headers("POST, OPTIONS")
    _housekeeping()

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)
    if request.method != "POST":
        return _method_not_allowed(headers)

    try:
        data = await _read_json(request)
    except InvalidRequest as exc:
        data = None
        parse_error = exc
    else:
        parse_error = None

    creating = data is not None and data.get("type") == "GENERATE_REFLECTION"
    limited = _rate_limited(request, RequestClass.CREATE if creating else RequestClass.SEARCH, headers)
    if limited is not None:
        return limited

    try:
        if parse_error is not None:
            raise parse_error
        if creating:
            result = await reflection_start(data.get("topic"), data.get("verses"))
            return JSONResponse(result, status_code=202, headers=headers)
        if data.get("type") == "SEARCH_VERSES":
            result = await scripture_search(data.get("query"))
            return JSONResponse(result, headers=headers)
        raise InvalidRequest("invalid request type")
    except InvalidRequest as exc:
        logger.info("Rejected request: %s", exc)
        return _error(400, "Invalid request", "Please provide a valid request", headers)
    except TopicRejected as exc:
        return _error(
            400,
            "Invalid topic",
            "This topic cannot be addressed from a biblical perspective",
            headers,
            reason=exc.reason,
        )
    except Exception:
        logger.exception("Verse search request failed")
        return _error(500, "Function failed", "An error occurred while processing your request", headers)


@mcp.custom_route("/api/reflection-status", methods=ROUTE_METHODS)
async def reflection_status_endpoint(request: Request) -> Response:
    """Start a reflection job (POST) or poll one (GET ``?id=``)."""
    headers = _cors_headers("POST, GET, OPTIONS")
    _housekeeping()

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)

    if request.method == "POST":
        limited = _rate_limited(request, RequestClass.CREATE, headers)
        if limited is not None:
            return limited
        try:
            data = await _read_json(request)
            result = await reflection_start(data.get("topic"), data.get("verses"))
        except InvalidRequest as exc:
            logger.info("Rejected reflection request: %s", exc)
            return _error(400, "Invalid request", "Please provide valid topic and verses", headers)
        except Exception:
            logger.exception("Failed to start reflection")
            return _error(500, "Server error", "Something went wrong. Please try again.", headers)
        return JSONResponse(result, status_code=202, headers=headers)

    if request.method == "GET":
        limited = _rate_limited(
            request,
            RequestClass.STATUS,
            headers,
            "Too many status checks. Please try again in a minute.",
        )
        if limited is not None:
            return limited
        try:
            status = await reflection_status(request.query_params.get("id", ""))
        except Exception:
            logger.exception("Failed to read reflection status")
            return _error(500, "Server error", "Something went wrong. Please try again.", headers)
        if status is None:
            return _error(404, "Not found", "Reflection not found", headers)
        return JSONResponse(status, headers=headers)

    return _method_not_allowed(headers)


# Register MCP tools
TOOL_ERROR = {"status": "error", "reason": "An error occurred while processing your request"}


def _tool_client_key() -> str:
    """Client key for an MCP call; in-process transports share the "mcp" key."""
    try:
        request = get_http_request()
    except RuntimeError:
        return "mcp"
    return _client_key(request)


def _tool_rate_limited(request_class: RequestClass) -> dict | None:
    """Housekeeping plus the rate-limit gate for MCP tools, mirroring the HTTP routes."""
    _housekeeping()
    key = _tool_client_key()
    if rate_limiter.check(key, request_class):
        return None
    return {
        "status": "error",
        "reason": "rate limited",
        "retry_after": rate_limiter.retry_after(key, request_class),
    }


@mcp.tool()
async def search_verses(query: str) -> dict:
    """Find Bible verses relevant to a topic, question, book or character.

    Args:
        query: Free-text topic, e.g. "forgiveness" or "the story of Ruth".

    Returns:
        dict with verses (list of reference/text pairs), or status "error"
        with a reason when the topic is unsuitable, invalid or rate limited.
    """
    limited = _tool_rate_limited(RequestClass.SEARCH)
    if limited is not None:
        return limited
    try:
        return await scripture_search(query)
    except TopicRejected as exc:
        return {"status": "error", "reason": exc.reason}
    except InvalidRequest:
        return {"status": "error", "reason": "invalid query"}
    except Exception:
        logger.exception("Verse search tool failed")
        return TOOL_ERROR


@mcp.tool()
async def reflect(topic: str, verses: list[dict]) -> dict:
    """Queue a devotional reflection and prayer in the background.

    Args:
        topic: Topic of the reflection.
        verses: Supporting verses as {"reference": ..., "text": ...} objects.

    Returns:
        dict with job id and status "pending".
    """
    limited = _tool_rate_limited(RequestClass.CREATE)
    if limited is not None:
        return limited
    try:
        return await reflection_start(topic, verses)
    except InvalidRequest:
        return {"status": "error", "reason": "please provide a topic and at least one valid verse"}
    except Exception:
        logger.exception("Reflect tool failed")
        return TOOL_ERROR


@mcp.tool()
async def reflect_status(job_id: str) -> dict:
    """Get the status of a background reflection job."""
    limited = _tool_rate_limited(RequestClass.STATUS)
    if limited is not None:
        return limited
    try:
        status = await reflection_status(job_id)
    except Exception:
        logger.exception("Reflect status tool failed")
        return TOOL_ERROR
    return status if status is not None else {"status": "not_found"}


@mcp.tool()
async def reflect_wait(job_id: str, poll_interval: float = 1.0, max_attempts: int = 30) -> dict:
    """Wait for a background reflection job to finish.

    Args:
        job_id: Id returned by ``reflect``.
        poll_interval: Seconds between status checks (default: 1.0, minimum 0.5).
        max_attempts: Status checks before giving up (default and maximum: 30).

    Returns:
        Final status dict, the last pending status if attempts ran out,
        or status "not_found".
    """
    limited = _tool_rate_limited(RequestClass.STATUS)
    if limited is not None:
        return limited
    try:
        status = await reflection_wait(job_id, poll_interval=poll_interval, max_attempts=max_attempts)
    except Exception:
        logger.exception("Reflect wait tool failed")
        return TOOL_ERROR
    return status if status is not None else {"status": "not_found"}


# ASGI app for uvicorn
app = mcp.http_app()

if __name__ == "__main__":
    mcp.run(
        transport="http",
        host=settings.devotional_host,
        port=settings.devotional_port,
        stateless_http=True,
    )
