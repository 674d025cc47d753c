"""Shared requests session factory with timeouts and bounded retries."""

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from harvester.core.config import HttpConfig
from harvester.core.exceptions import NetworkError


def build_session(config: HttpConfig) -> requests.Session:
    """Session that retries idempotent requests on connection errors and 5xx/429."""
    retry = Retry(
        total=config.max_retries,
        backoff_factor=config.backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)

    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


class JsonApiClient:
    """Base for the small JSON APIs the harvester consumes."""

    def __init__(self, base_url: str, config: HttpConfig, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self.session = session or build_session(config)

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise NetworkError(f"GET {url} failed: {e}")
        except ValueError as e:
            raise NetworkError(f"GET {url} returned invalid JSON: {e}")
