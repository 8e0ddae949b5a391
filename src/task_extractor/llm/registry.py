"""Discovery cache for local LLM services."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import httpx

from ..events import EventSink, NullEventSink
from ..models import ProviderServiceRecord


logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TTL_SECONDS = 30 * 60

# provider name -> (url setting, discovery path)
DISCOVERY_ENDPOINTS = {
    'ollama': ('ollama_url', '/api/tags'),
    'lmstudio': ('lmstudio_url', '/v1/models'),
}

V = TypeVar('V')


class TTLCache(Generic[V]):
    """Values that are refreshed lazily once they are older than a TTL.

    Entries are never expired actively; a read past the TTL runs the probe
    again. Concurrent stale reads are not coalesced.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, tuple] = {}

    async def get_or_refresh(self, key: str, ttl: float,
                             probe: Callable[[], Awaitable[V]]) -> V:
        entry = self._entries.get(key)
        now = self._clock()
        if entry is not None and now - entry[0] < ttl:
            return entry[1]

        value = await probe()
        self._entries[key] = (self._clock(), value)
        return value

    def peek(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        return entry[1] if entry is not None else None

    def values(self) -> List[V]:
        return [value for _, value in self._entries.values()]

    def clear(self) -> None:
        self._entries.clear()


def parse_discovered_models(provider: str, payload: Any) -> List[str]:
    """Pull model names out of a discovery response."""
    if not isinstance(payload, dict):
        return []
    if provider == 'ollama':
        return [m['name'] for m in payload.get('models') or []
                if isinstance(m, dict) and m.get('name')]
    return [m['id'] for m in payload.get('data') or []
            if isinstance(m, dict) and m.get('id')]


def select_model(record: ProviderServiceRecord, configured: str) -> str:
    """Use the configured model if the service has it, else its first model."""
    if configured and configured in record.models:
        return configured
    if configured:
        logger.info(f"Model '{configured}' not found on {record.name}, using {record.models[0]}")
    return record.models[0]


class ServiceRegistry:
    """TTL-cached knowledge of which local providers are reachable."""

    def __init__(self, config: Any, http_client: Optional[httpx.AsyncClient] = None,
                 events: Optional[EventSink] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.events = events or NullEventSink()
        self._http = http_client
        self._owns_http = http_client is None
        self._clock = clock
        self._cache: TTLCache[ProviderServiceRecord] = TTLCache(clock=clock)

    @property
    def ttl(self) -> float:
        return getattr(self.config, 'service_cache_ttl_seconds', DEFAULT_SERVICE_TTL_SECONDS)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=10.0)
        return self._http

    async def get_service(self, name: str) -> Optional[ProviderServiceRecord]:
        """
        Return the discovery record for a local provider, probing if stale.

        Args:
            name: 'ollama' or 'lmstudio'

        Returns:
            The record, or None for providers without discovery
        """
        if name not in DISCOVERY_ENDPOINTS:
            logger.debug(f"No service discovery for provider: {name}")
            return None
        return await self._cache.get_or_refresh(name, self.ttl, lambda: self._probe(name))

    async def detect_services(self) -> List[ProviderServiceRecord]:
        records = []
        for name in DISCOVERY_ENDPOINTS:
            record = await self.get_service(name)
            if record is not None:
                records.append(record)
        return records

    async def available_services(self) -> List[ProviderServiceRecord]:
        """Local services that are reachable and expose at least one model."""
        return [record for record in await self.detect_services() if record.usable]

    def cached_services(self) -> List[ProviderServiceRecord]:
        return self._cache.values()

    async def _probe(self, name: str) -> ProviderServiceRecord:
        url_setting, path = DISCOVERY_ENDPOINTS[name]
        base_url = (getattr(self.config, url_setting, '') or '').rstrip('/')
        record = ProviderServiceRecord(name=name, url=base_url, last_checked_at=self._clock())
        endpoint = f"{base_url}{path}"
        correlation_id = self.events.start_operation(
            'service-detection', f"Detecting service: {name}", {'provider': name, 'endpoint': endpoint})

        try:
            started = time.monotonic()
            response = await self.http.get(endpoint)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            if 200 <= response.status_code < 300:
                record.models = parse_discovered_models(name, response.json())
                record.available = bool(record.models)
                if not record.models:
                    logger.info(f"{name} is reachable but reports no models")
            else:
                logger.info(f"{name} discovery returned HTTP {response.status_code}")
            self.events.emit('info', 'service-detection', f"{name} probe finished", {
                'provider': name,
                'status': response.status_code,
                'available': record.available,
                'modelCount': len(record.models),
                'connectionTime': elapsed_ms,
            }, correlation_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"{name} not available: {e}")
            self.events.emit('warn', 'service-detection', f"{name} not available", {
                'provider': name,
                'error': str(e),
                'errorType': type(e).__name__,
            }, correlation_id)

        return record

    def clear(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
