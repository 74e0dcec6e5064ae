"""
CelesTrak GP client

Performs conditional GET requests against the CelesTrak GP endpoint. JSON is
requested first; when JSON access is refused (HTTP 403) or the JSON carries
no TLE lines, the same query is retried against the plain-text format.

Requests run on a worker thread through ``run_in_executor`` so the blocking
``requests`` session never stalls the event loop.
"""

import asyncio
from typing import List, Optional, Protocol, Union

import requests
from pydantic import BaseModel, ConfigDict

from .config import config
from .errors import (
    BadStatus,
    EmptyBody,
    InvalidURL,
    MissingTLELines,
    NonHTTPResponse,
    NotModified,
)
from .logging_config import get_logger
from .models import TLE, TLECacheMetadata
from .tle_parser import decode_json_payload, parse_tles

logger = get_logger(__name__)


class FetchResponse(BaseModel):
    """Raw payload returned by a successful (2xx) request"""
    model_config = ConfigDict(frozen=True)

    payload: bytes
    content_type: str
    source_url: str
    etag: Optional[str] = None
    last_modified: Optional[str] = None


class PayloadResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    response: FetchResponse


class NotModifiedResult(BaseModel):
    """HTTP 304: the cached payload is still current"""
    model_config = ConfigDict(frozen=True)

    etag: Optional[str] = None
    last_modified: Optional[str] = None
    source_url: str


FetchResult = Union[NotModifiedResult, PayloadResult]


class TLERemoteFetcher(Protocol):
    async def fetch_tle_text(
        self, name_query: str, cache_metadata: Optional[TLECacheMetadata] = None
    ) -> FetchResult: ...


def normalized_content_type(raw: Optional[str]) -> str:
    if not raw:
        return "application/json"
    return raw.split(";")[0].strip() or "application/json"


class CelesTrakClient:
    """
    Conditional fetcher for CelesTrak GP data.

    Args:
        session: requests session (a new one is created when omitted)
        base_url: GP endpoint URL
        timeout: per-request timeout in seconds
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        self.session = session or requests.Session()
        self.base_url = base_url or config.CELESTRAK_GP_URL
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS
        self.user_agent = user_agent or config.USER_AGENT

    async def fetch_tle_text(
        self, name_query: str, cache_metadata: Optional[TLECacheMetadata] = None
    ) -> FetchResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetch_sync, name_query, cache_metadata)

    async def fetch_tles(self, name_query: str) -> List[TLE]:
        """Fetch and parse TLEs without any cache validators."""
        result = await self.fetch_tle_text(name_query)
        if isinstance(result, NotModifiedResult):
            raise NotModified()
        tles = parse_tles(result.response.payload, result.response.content_type)
        if not tles:
            raise EmptyBody()
        return tles

    def fetch_sync(
        self, name_query: str, cache_metadata: Optional[TLECacheMetadata] = None
    ) -> FetchResult:
        """Blocking fetch: JSON first, then the text format as a fallback."""
        try:
            result = self._perform_request(name_query, "json", "application/json", cache_metadata)
        except BadStatus as e:
            if e.status_code != 403:
                raise
            logger.info("JSON endpoint refused, retrying text format", query=name_query)
            return self._perform_request(name_query, "tle", "text/plain", cache_metadata)

        if isinstance(result, PayloadResult) and result.response.content_type.startswith("application/json"):
            try:
                # Only JSON that actually contains TLE lines is worth caching
                decode_json_payload(result.response.payload)
            except MissingTLELines:
                logger.info("JSON payload has no TLE lines, retrying text format", query=name_query)
                return self._perform_request(name_query, "tle", "text/plain", cache_metadata)
        return result

    def _prepare(self, name_query: str, fmt: str, accept: str,
                 cache_metadata: Optional[TLECacheMetadata]) -> requests.PreparedRequest:
        # CelesTrak expects a User-Agent; without it the API can respond with 403/HTML
        headers = {"User-Agent": self.user_agent, "Accept": accept}
        if cache_metadata is not None:
            if cache_metadata.etag:
                headers["If-None-Match"] = cache_metadata.etag
            if cache_metadata.last_modified:
                headers["If-Modified-Since"] = cache_metadata.last_modified

        request = requests.Request(
            "GET", self.base_url, params={"NAME": name_query, "FORMAT": fmt}, headers=headers
        )
        try:
            return request.prepare()
        except (requests.exceptions.InvalidURL,
                requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise InvalidURL() from e

    def _perform_request(self, name_query: str, fmt: str, accept: str,
                         cache_metadata: Optional[TLECacheMetadata]) -> FetchResult:
        prepared = self._prepare(name_query, fmt, accept, cache_metadata)
        source_url = prepared.url
        try:
            response = self.session.send(prepared, timeout=self.timeout)
        except (requests.exceptions.InvalidURL,
                requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise InvalidURL() from e

        status = getattr(response, "status_code", None)
        if not isinstance(status, int) or isinstance(status, bool):
            raise NonHTTPResponse()

        headers = response.headers
        logger.debug("CelesTrak response", url=source_url, status=status)

        if status == 304:
            return NotModifiedResult(
                etag=headers.get("ETag"),
                last_modified=headers.get("Last-Modified"),
                source_url=source_url,
            )
        if not 200 <= status < 300:
            raise BadStatus(status)

        payload = response.content or b""
        if not payload:
            raise EmptyBody()

        return PayloadResult(response=FetchResponse(
            payload=payload,
            content_type=normalized_content_type(headers.get("Content-Type")),
            source_url=source_url,
            etag=headers.get("ETag"),
            last_modified=headers.get("Last-Modified"),
        ))
