"""
Transmitter: deliver a snapshot to the remote endpoint.

Builds the authenticated request URL and payload envelope, performs a
single POST and classifies the outcome. There is no retry: a failure is
terminal for the cycle that produced it.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from marksync import __version__
from marksync.errors import TransmissionFailure
from marksync.models import NodeDescriptor, SyncRecord

logger = logging.getLogger(__name__)

AUTO_SYNC_SOURCE = "auto_sync"
SEND_ACTION = "sendBookmarks"

# Characters encodeURIComponent leaves alone, besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def build_request_url(endpoint_url: str, shared_secret: Optional[str] = None) -> str:
    """
    Append the shared secret to the endpoint as a ``password`` parameter.

    Examples:
        >>> build_request_url("https://x/y", "s")
        'https://x/y?password=s'
        >>> build_request_url("https://x/y?z=1", "s")
        'https://x/y?z=1&password=s'
        >>> build_request_url("https://x/y")
        'https://x/y'
    """
    if not shared_secret:
        return endpoint_url
    separator = '&' if '?' in endpoint_url else '?'
    return f"{endpoint_url}{separator}password={quote(shared_secret, safe=_URI_COMPONENT_SAFE)}"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def build_envelope(descriptors: List[NodeDescriptor],
                   source: Optional[str] = None,
                   now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Wrap descriptors in the outbound payload.

    ``source`` is only present for automatic cycles.
    """
    envelope = {
        'bookmarks': [d.to_dict() for d in descriptors],
        'timestamp': utc_timestamp(now),
        'count': len(descriptors),
    }
    if source:
        envelope['source'] = source
    return envelope


@dataclass
class TransmitResult:
    """Outcome of a single transmission."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "TransmitResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "TransmitResult":
        return cls(success=False, error=error)

    def to_message(self) -> Dict[str, Any]:
        """Convert to the cross-context response shape."""
        if self.success:
            return {'success': True, 'data': self.data}
        return {'success': False, 'error': self.error}

    @classmethod
    def from_message(cls, message: Optional[Dict[str, Any]]) -> "TransmitResult":
        if message and message.get('success'):
            return cls.ok(message.get('data'))
        return cls.fail((message or {}).get('error') or "Unknown error")


class SendObserver:
    """
    Start/settle hooks around an interactive send.

    UIs subclass this to toggle controls and spinners. The default
    implementation does nothing.
    """

    def on_begin(self):
        pass

    def on_success(self, data: Any):
        pass

    def on_failure(self, message: str):
        pass


class Transmitter:
    """
    Performs the outbound POST.

    Args:
        session: Optional shared aiohttp session (a new one is opened per
            request otherwise)
        timeout: Total request timeout in seconds (None for the transport
            default)
        user_agent: User-Agent header value
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None,
                 timeout: Optional[float] = None,
                 user_agent: str = f"marksync/{__version__}"):
        self.session = session
        self.timeout = timeout
        self.user_agent = user_agent

    async def post(self, url: str, payload: Dict[str, Any]) -> TransmitResult:
        """
        POST a JSON payload and classify the response.

        Any 2xx/3xx status with a JSON body is a success. Other statuses,
        network errors and unparseable bodies are failures.
        """
        try:
            if self.session is not None:
                data = await self._post(self.session, url, payload)
            else:
                session_args = {'headers': {'User-Agent': self.user_agent}}
                if self.timeout:
                    session_args['timeout'] = aiohttp.ClientTimeout(total=self.timeout)
                async with aiohttp.ClientSession(**session_args) as session:
                    data = await self._post(session, url, payload)
        except TransmissionFailure as e:
            logger.error(f"Transmission failed: {e}")
            return TransmitResult.fail(str(e))
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Transmission failed: {message}")
            return TransmitResult.fail(message)

        logger.debug(f"Endpoint responded: {data}")
        return TransmitResult.ok(data)

    async def _post(self, session, url: str, payload: Dict[str, Any]) -> Any:
        async with session.post(
            url,
            data=json.dumps(payload),
            headers={'Content-Type': 'application/json'},
        ) as response:
            if not 200 <= response.status < 400:
                raise TransmissionFailure(f"HTTP {response.status}: {response.reason}")
            # An empty body is not JSON and counts as a failure
            body = await response.text()
            return json.loads(body)

    async def send(self, descriptors: List[NodeDescriptor], record: SyncRecord,
                   source: Optional[str] = None) -> TransmitResult:
        """Build the URL and envelope for a snapshot and POST it."""
        url = build_request_url(record.endpoint_url, record.shared_secret)
        envelope = build_envelope(descriptors, source=source)
        logger.info(f"Sending {envelope['count']} bookmarks to {record.endpoint_url}")
        return await self.post(url, envelope)


class RequestBridge:
    """
    Request/response relay between execution contexts.

    The interactive context hands a prepared request to the long-lived
    context, which performs the POST and answers with
    ``{"success": True, "data": ...}`` or ``{"success": False, "error": ...}``.
    """

    def __init__(self, transmitter: Transmitter):
        self.transmitter = transmitter

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        action = message.get('action')
        if action != SEND_ACTION:
            return {'success': False, 'error': f"Unknown action: {action}"}

        logger.info("Relaying send request")
        result = await self.transmitter.post(message['url'], message.get('data') or {})
        return result.to_message()
