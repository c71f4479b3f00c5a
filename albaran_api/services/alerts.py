import traceback
from typing import Optional

import httpx
import structlog

from ..config import settings


logger = structlog.get_logger(__name__)

SLACK_PREFIX = "https://hooks.slack.com/"


def slack_configured() -> bool:
    return bool(settings.slack_webhook and settings.slack_webhook.startswith(SLACK_PREFIX))


def format_alert(method: str, path: str, status_code: int, error: Optional[BaseException] = None) -> str:
    message = f"Error {status_code} en {method} {path}"
    if error is not None:
        message += f": {error}"
        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        message += f"\n```\n{tb[-2500:]}\n```"
    return message


def send_slack_alert(text: str) -> None:
    """Post to the incoming webhook; failures are only logged."""
    if not slack_configured():
        logger.info("slack_alert_skipped", reason="webhook_not_configured")
        return
    try:
        r = httpx.post(settings.slack_webhook, json={"text": text}, timeout=10.0)
        r.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("slack_alert_failed", error=str(e))
