from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from urbit_channel.mock_ship.deps import require_session
from urbit_channel.mock_ship.dummy_data import SCRY_FIXTURES

router = APIRouter()


@router.get("/~/scry/{path:path}")
async def scry(path: str, request: Request):
    require_session(request)
    key = f"/{path}"
    if key not in SCRY_FIXTURES:
        return Response(status_code=404)
    return JSONResponse(SCRY_FIXTURES[key])
