from loguru import logger


def log_connection(event: str, token: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for channel traffic on the mock ship.
    Writes: event, channel token, and any extra fields.
    """
    log_str = f"event={event} channel={token}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)
