import secrets
from urllib.parse import parse_qs

from fastapi import APIRouter, Request, Response
from loguru import logger

from urbit_channel.mock_ship.deps import get_ship

router = APIRouter()


@router.post("/~/login")
async def login(request: Request):
    ship = get_ship(request)
    # Form-encoded `password=<code>`, parsed by hand to avoid a multipart dependency
    form = parse_qs((await request.body()).decode("utf-8"))
    password = form.get("password", [""])[0]

    if password != ship.code:
        logger.warning(f"ship=~{ship.ship} event=login_failed")
        return Response(status_code=400)

    response = Response(status_code=204)
    response.set_cookie(ship.cookie_name, f"0v{secrets.token_hex(16)}", path="/", max_age=604800)
    logger.info(f"ship=~{ship.ship} event=login")
    return response
