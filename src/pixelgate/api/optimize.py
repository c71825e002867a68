from fastapi import APIRouter, Depends, Request, Response

from pixelgate.core.gateway import Gateway, OptimizeRequest
from pixelgate.deps.gateway import get_gateway

router = APIRouter(tags=["optimize"])


def _raw_segments(request: Request, prefix_len: int, fallback: str) -> list[str]:
    """
    Path segments after the tenant prefix, before percent-decoding.

    The gateway decodes the image path itself (and rejects malformed
    encodings), so it needs the path as the client sent it.
    """
    raw = request.scope.get("raw_path")
    if not raw:
        return fallback.split("/")
    path = raw.split(b"?", 1)[0].decode("latin-1")
    return path.split("/")[prefix_len + 1:]


async def _optimize(request: Request, gateway: Gateway, project_slug: str, segments: list[str], team_slug=None):
    image = await gateway.handle(
        OptimizeRequest(
            project_slug=project_slug,
            team_slug=team_slug,
            segments=segments,
            query=dict(request.query_params),
            referer=request.headers.get("referer"),
        )
    )
    return Response(content=image.data, status_code=200, headers=image.headers(), media_type=image.content_type)


@router.get("/v1/{project_slug}/{path:path}")
async def optimize(
    project_slug: str,
    path: str,
    request: Request,
    gateway: Gateway = Depends(get_gateway),
):
    return await _optimize(request, gateway, project_slug, _raw_segments(request, 2, path))


@router.get("/teams/{team_slug}/projects/{project_slug}/{path:path}")
async def optimize_for_team(
    team_slug: str,
    project_slug: str,
    path: str,
    request: Request,
    gateway: Gateway = Depends(get_gateway),
):
    return await _optimize(request, gateway, project_slug, _raw_segments(request, 4, path), team_slug=team_slug)
