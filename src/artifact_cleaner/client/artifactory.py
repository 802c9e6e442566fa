"""
Artifactory REST client.

Thin httpx wrapper over the handful of Artifactory endpoints the cleaner
needs: repository listing, date-ranged search, storage metadata, download
and delete. HTTP-level failures are mapped onto the cleaner's exception
hierarchy so the discovery pool can decide whether to retry.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from artifact_cleaner.artifacts.models import DiscoveredArtifact, RepositoryInfo, SearchHit
from artifact_cleaner.client.base import RepositoryBackend
from artifact_cleaner.core.config import CleanerConfig
from artifact_cleaner.core.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    RemoteServiceError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-JFrog-Art-Api"
SEARCH_DATE_FIELDS = "created,lastModified,lastDownloaded"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024
PARTIAL_SUFFIX = ".part"


def _epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class ArtifactoryClient(RepositoryBackend):
    """
    Artifactory backend over HTTP.

    Safe to share between discovery workers: httpx.Client is thread-safe
    and every call is a single request.
    """

    def __init__(
        self,
        config: CleanerConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            config: Connection settings; ``endpoint`` is required
            transport: Optional httpx transport, used by tests

        Raises:
            ConfigurationError: If no endpoint is configured
        """
        if not config.endpoint:
            raise ConfigurationError(
                "An Artifactory endpoint is required",
                config_key="endpoint",
            )
        self._config = config

        headers = {"Accept": "application/json"}
        if config.api_key:
            headers[API_KEY_HEADER] = config.api_key

        self._client = httpx.Client(
            base_url=config.endpoint,
            headers=headers,
            timeout=config.timeout_seconds,
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return self._config.endpoint or ""

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        if response.is_success:
            return
        if response.status_code == 404:
            raise ArtifactNotFoundError(f"HTTP 404 Not Found fetching: {url}", url=url)
        raise RemoteServiceError(
            f"HTTP {response.status_code} from Artifactory",
            status_code=response.status_code,
            url=url,
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport and status failures."""
        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransientNetworkError(
                f"Connection failure reaching Artifactory: {e}", url=url
            ) from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"HTTP error during request: {e}", url=url) from e

        self._raise_for_status(response, url)
        return response

    def _json(self, response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                "Artifactory returned a response that is not JSON",
                status_code=response.status_code,
                url=url,
            ) from e

    def list_repositories(self) -> list[RepositoryInfo]:
        url = "/api/repositories"
        data = self._json(self._request("GET", url), url)
        try:
            return [RepositoryInfo.model_validate(item) for item in data]
        except (TypeError, ValidationError) as e:
            raise RemoteServiceError(f"Unexpected repository listing: {e}", url=url) from e

    def search_dates(
        self,
        date_from: datetime,
        date_to: datetime,
        repos: Sequence[str] | None = None,
    ) -> list[SearchHit]:
        url = "/api/search/dates"
        params: dict[str, Any] = {
            "dateFields": SEARCH_DATE_FIELDS,
            "from": _epoch_millis(date_from),
            "to": _epoch_millis(date_to),
        }
        if repos:
            params["repos"] = ",".join(r for r in repos if r)

        logger.debug(f"Making Artifactory request {url} for {params}")
        data = self._json(self._request("GET", url, params=params), url)
        try:
            return [SearchHit.model_validate(item) for item in data.get("results", [])]
        except (AttributeError, ValidationError) as e:
            raise RemoteServiceError(f"Unexpected search response: {e}", url=url) from e

    def fetch_artifact(self, uri: str) -> DiscoveredArtifact:
        data = self._json(self._request("GET", uri), uri)
        try:
            return DiscoveredArtifact.from_api(data)
        except (TypeError, ValidationError) as e:
            raise RemoteServiceError(f"Unexpected artifact metadata: {e}", url=uri) from e

    def download(self, url: str, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        # Only a complete download is ever visible under the final name
        partial = destination.with_name(f"{destination.name}{PARTIAL_SUFFIX}")
        try:
            with self._client.stream("GET", url) as response:
                self._raise_for_status(response, url)
                with partial.open("wb") as fh:
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        fh.write(chunk)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            partial.unlink(missing_ok=True)
            raise TransientNetworkError(
                f"Connection failure downloading artifact: {e}", url=url
            ) from e
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise RemoteServiceError(f"HTTP error during download: {e}", url=url) from e
        except Exception:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(destination)
        return destination

    def delete(self, url: str) -> None:
        self._request("DELETE", url)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
