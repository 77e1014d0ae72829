"""
MODULE OVERVIEW:
Channel tokens and the URLs derived from them.

WHAT IS HAPPENING HERE:
A channel is addressed as `{url}/~/channel/{token}` where the token is
`{unix-seconds}-{6 random base36 chars}`. Every reconnect gets a fresh token,
so a ship never sees a half-dead channel being reused.
"""
import random
import string
import time
from urllib.parse import urlsplit

from urbit_channel.shared.models import ChannelIdentity

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase


def make_token(now: float | None = None) -> str:
    seconds = int(time.time() if now is None else now)
    suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=6))
    return f"{seconds}-{suffix}"


def channel_endpoint(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/~/channel/{token}"


def scry_endpoint(base_url: str, path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base_url.rstrip('/')}/~/scry{path}"


def normalize_credential(cookie: str) -> str:
    """Keeps only `name=value` from a raw set-cookie header."""
    return cookie.split(";")[0].strip()


def derive_ship(base_url: str) -> str:
    """`https://~sampel-palnet.arvo.network` -> `sampel-palnet`"""
    host = urlsplit(base_url).hostname or ""
    return host.split(".")[0].replace("~", "")


def new_identity(
    base_url: str,
    credential: str,
    previous: ChannelIdentity | None = None,
) -> ChannelIdentity:
    token = make_token()
    while previous is not None and token == previous.token:
        token = make_token()
    return ChannelIdentity(
        token=token,
        endpoint=channel_endpoint(base_url, token),
        credential=normalize_credential(credential),
    )
