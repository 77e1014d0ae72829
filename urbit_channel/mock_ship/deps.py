from fastapi import HTTPException, Request

from urbit_channel.mock_ship.ship_state import ShipState
from urbit_channel.shared.route_utils import log_connection


def get_ship(request: Request) -> ShipState:
    return request.app.state.ship


def require_session(request: Request) -> ShipState:
    """
    Rejects requests that don't carry the ship's session cookie,
    the way a real ship answers 403 to an unauthenticated client.
    """
    ship = get_ship(request)
    if not ship.is_authorized(request.headers.get("cookie")):
        log_connection("auth:rejected", request.url.path)
        raise HTTPException(status_code=403, detail="Not logged in")
    return ship
