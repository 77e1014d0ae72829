import httpx
from loguru import logger

from urbit_channel.client.identity import normalize_credential
from urbit_channel.shared.errors import AuthenticationError


async def authenticate(
    url: str,
    code: str,
    http: httpx.AsyncClient | None = None,
    timeout_s: float = 30.0,
) -> str:
    """
    Logs in with the ship's access code and returns the session cookie
    (`urbauth-~ship=...`), ready to hand to UrbitChannelClient.
    """
    login_url = f"{url.rstrip('/')}/~/login"
    client = http or httpx.AsyncClient(timeout=timeout_s)
    try:
        response = await client.post(login_url, data={"password": code}, follow_redirects=False)
    except httpx.HTTPError as e:
        raise AuthenticationError(f"Login request to {login_url} failed: {e}") from e
    finally:
        if http is None:
            await client.aclose()

    if response.status_code >= 400:
        raise AuthenticationError(f"Login failed with status {response.status_code}")

    cookie = response.headers.get("set-cookie")
    if not cookie:
        raise AuthenticationError("No authentication cookie received")

    logger.info(f"event=authenticated url={url}")
    return normalize_credential(cookie)
