"""
Outbound transactional email through a Resend-compatible HTTP API.

Every provider call goes through a shared throttle, because the provider
enforces a requests-per-second limit. Senders never raise for delivery
problems; they return one SendResult per message instead.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: Optional[str] = None

    def payload(self, sender: str) -> dict:
        body = {"from": sender, "to": [self.to], "subject": self.subject, "html": self.html}
        if self.text:
            body["text"] = self.text
        return body


@dataclass
class SendResult:
    email: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class RequestThrottle:
    """Spaces calls at least ``1 / requests_per_second`` seconds apart"""

    def __init__(self, requests_per_second: float):
        self.interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._last_request = 0.0
        self._lock = asyncio.Lock()

    async def wait(self):
        if not self.interval:
            return
        async with self._lock:
            now = time.monotonic()
            wait_time = self._last_request + self.interval - now
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self._last_request = time.monotonic()


class EmailSender:
    """Interface used by the notification dispatcher"""

    async def send(self, message: EmailMessage) -> SendResult:
        raise NotImplementedError

    async def send_batch(self, messages: List[EmailMessage]) -> List[SendResult]:
        results = []
        for message in messages:
            results.append(await self.send(message))
        return results

    async def get_delivery_status(self, message_id: str) -> str:
        return "unknown"


class ResendEmailSender(EmailSender):
    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com",
        from_email: str = "",
        batch_size: int = 100,
        requests_per_second: float = 2.0,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.from_email = from_email
        self.batch_size = max(1, batch_size)
        self.timeout = timeout
        self.throttle = RequestThrottle(requests_per_second)
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self._transport,
        )

    async def send(self, message: EmailMessage) -> SendResult:
        if not self.configured:
            logger.error("Email provider API key is not configured")
            return SendResult(email=message.to, success=False, error="Email provider not configured")

        try:
            await self.throttle.wait()
            async with self._client() as client:
                response = await client.post("/emails", json=message.payload(self.from_email))
            if response.is_error:
                error = _error_message(response)
                logger.error(f"Email provider rejected message to {message.to}: {error}")
                return SendResult(email=message.to, success=False, error=error)
            message_id = (response.json() or {}).get("id")
            logger.info(f"Email sent to {message.to}: {message_id}")
            return SendResult(email=message.to, success=True, message_id=message_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error sending email to {message.to}: {e}")
            return SendResult(email=message.to, success=False, error=str(e))

    async def send_batch(self, messages: List[EmailMessage]) -> List[SendResult]:
        if not messages:
            return []
        if not self.configured:
            logger.error("Email provider API key is not configured")
            return [
                SendResult(email=m.to, success=False, error="Email provider not configured")
                for m in messages
            ]

        chunks = [messages[i:i + self.batch_size] for i in range(0, len(messages), self.batch_size)]
        logger.info(f"Sending {len(messages)} emails in {len(chunks)} batch(es)")

        results: List[SendResult] = []
        async with self._client() as client:
            for index, chunk in enumerate(chunks, start=1):
                results.extend(await self._send_chunk(client, chunk, index))

        sent = sum(1 for r in results if r.success)
        logger.info(f"Batch email sending complete: {sent} sent, {len(results) - sent} failed")
        return results

    async def _send_chunk(self, client: httpx.AsyncClient, chunk: List[EmailMessage], index: int) -> List[SendResult]:
        try:
            await self.throttle.wait()
            response = await client.post(
                "/emails/batch", json=[m.payload(self.from_email) for m in chunk]
            )
            if response.is_error:
                error = _error_message(response)
                logger.error(f"Batch {index} rejected: {error}")
                return [SendResult(email=m.to, success=False, error=error) for m in chunk]
            data = (response.json() or {}).get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Batch {index} error: {e}")
            return [SendResult(email=m.to, success=False, error=str(e)) for m in chunk]

        results = []
        for position, message in enumerate(chunk):
            entry = data[position] if position < len(data) and isinstance(data[position], dict) else {}
            message_id = entry.get("id")
            if message_id:
                results.append(SendResult(email=message.to, success=True, message_id=message_id))
            else:
                results.append(SendResult(email=message.to, success=False, error="No message id returned"))
        return results

    async def get_delivery_status(self, message_id: str) -> str:
        """Last provider event for a message ('sent', 'delivered', 'bounced', ...)"""
        if not self.configured:
            return "unknown"
        try:
            await self.throttle.wait()
            async with self._client() as client:
                response = await client.get(f"/emails/{message_id}")
            if response.is_error:
                return "unknown"
            return (response.json() or {}).get("last_event") or "sent"
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error getting delivery status for {message_id}: {e}")
            return "unknown"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


def build_email_sender() -> ResendEmailSender:
    return ResendEmailSender(
        api_key=settings.RESEND_API_KEY,
        api_url=settings.RESEND_API_URL,
        from_email=settings.FROM_EMAIL,
        batch_size=settings.EMAIL_BATCH_SIZE,
        requests_per_second=settings.EMAIL_REQUESTS_PER_SECOND,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )
