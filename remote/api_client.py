"""HTTP client for the team backend API."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin

import requests

logger = logging.getLogger(__name__)


@dataclass
class RemoteResult:
    """Outcome of a remote call. Failures are values, never exceptions."""
    success: bool
    data: Any = None
    error: Optional[str] = None


class RemoteClient:
    """Client for the backend REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 15,
        max_retries: int = 3,
        base_delay: float = 1.0
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root, e.g. http://localhost:8080/api/v1
            timeout: HTTP request timeout in seconds (default: 15)
            max_retries: Attempts per call before reporting failure (default: 3)
            base_delay: Initial backoff delay in seconds (default: 1.0)
        """
        self.base_url = base_url.rstrip('/') + '/'
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        })

    def submit(self, endpoint: str, payload: dict) -> RemoteResult:
        """
        POST a JSON payload.

        Args:
            endpoint: Path relative to the base URL
            payload: JSON-serializable request body

        Returns:
            RemoteResult with the decoded response body or an error message
        """
        return self._request('POST', endpoint, json=payload)

    def fetch(self, endpoint: str) -> RemoteResult:
        """
        GET a resource.

        Args:
            endpoint: Path relative to the base URL

        Returns:
            RemoteResult with the decoded response body or an error message
        """
        return self._request('GET', endpoint)

    def _request(self, method: str, endpoint: str, **kwargs) -> RemoteResult:
        """
        Perform a request with exponential backoff between attempts.

        Returns:
            RemoteResult; every failure is collapsed into success=False
        """
        url = urljoin(self.base_url, endpoint.lstrip('/'))
        last_error = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"{method} {url} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = self.session.request(
                    method,
                    url,
                    timeout=self.timeout,
                    **kwargs
                )
                response.raise_for_status()
                return RemoteResult(success=True, data=self._decode(response))

            except requests.RequestException as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} attempts failed for {method} {url}. "
                        f"Last error: {e}"
                    )

        return RemoteResult(success=False, error=last_error)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        if 'application/json' in response.headers.get('Content-Type', ''):
            try:
                return response.json()
            except ValueError:
                logger.warning(f"Malformed JSON body from {response.url}")
                return None
        return response.text
