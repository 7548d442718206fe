"""
Webhook sender.

Posts a finished video's metadata to the configured processing endpoint. The
endpoint URL is read from settings on every send.
"""

import json
import logging
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Dict, Optional

import httpx

from .errors import InvalidWebhookURL
from .models import VideoRecord
from .settings import AppSettings

logger = logging.getLogger("video_uploader")

NO_RESPONSE_BODY = "No response body"


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def format_created_at(record: VideoRecord) -> str:
    """ISO-8601 in UTC with second precision, e.g. 2024-05-01T12:30:00Z"""
    return record.created_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_payload(record: VideoRecord) -> Dict[str, Any]:
    return {
        "createdAt": format_created_at(record),
        "id": record.id,
        "userId": record.user_id,
        "title": record.title,
        "videoURL": record.video_url,
    }


class WebhookSender:
    """Sends video payloads to the webhook URL held in settings"""

    def __init__(self, settings: AppSettings, timeout: float = 30.0,
                 client: Optional[httpx.Client] = None):
        self.settings = settings
        self.timeout = timeout
        self._client = client

    def _resolve_url(self) -> httpx.URL:
        raw_url = self.settings.webhook_url.strip()
        try:
            url = httpx.URL(raw_url)
        except (httpx.InvalidURL, TypeError) as e:
            raise InvalidWebhookURL(f"Invalid webhook URL {raw_url!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidWebhookURL(f"Invalid webhook URL {raw_url!r}")
        return url

    def send(self, record: VideoRecord) -> WebhookResponse:
        """
        Post the record's payload.

        Transport errors are reported as a 500 response carrying the error
        text, matching what the caller shows for a failed request.

        Raises:
            InvalidWebhookURL: if the configured URL is unusable
        """
        url = self._resolve_url()
        body = json.dumps(build_payload(record))
        headers = {"Content-Type": "application/json"}

        try:
            if self._client is not None:
                response = self._client.post(url, content=body, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Error sending {record.id} to webhook: {e}")
            return WebhookResponse(500, str(e) or e.__class__.__name__)

        text = response.text or NO_RESPONSE_BODY
        logger.info(f"Webhook response for {record.id}: {response.status_code}")
        logger.debug(f"Webhook response body: {text}")
        return WebhookResponse(response.status_code, text)
