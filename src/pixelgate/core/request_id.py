import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LEN = 64


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attaches request.state.request_id, reusing a sane incoming X-Request-ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and len(incoming) <= MAX_REQUEST_ID_LEN and incoming.isprintable():
            request_id = incoming
        else:
            request_id = uuid.uuid4().hex

        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
