"""HTTP client with bounded retries for metric backends."""
import time
import logging
import requests

from __version__ import __version__

logger = logging.getLogger("alertengine.http")


class APIError(Exception):
    """API request error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source


class HTTPClient:
    """JSON-over-HTTP client with retry and backoff.

    Evaluation ticks are short, so retries are few and backoff is capped
    well below the default tick interval.
    """

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}
    MAX_BACKOFF = 5.0

    def __init__(self, base_url, timeout=10, max_retries=1, headers=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": f"alertengine/{__version__}"})
        if headers:
            self.session.headers.update(headers)

    def get(self, path="", params=None):
        """GET a JSON document, retrying transient failures."""
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                start = time.monotonic()
                resp = self.session.get(url, params=params, timeout=self.timeout)
                latency = int((time.monotonic() - start) * 1000)
                logger.debug(f"GET {url} -> {resp.status_code} ({latency}ms)")
            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = e
                self._backoff(attempt)
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError:
                    raise APIError(f"Non-JSON response from {url}",
                                   status_code=200, response_body=resp.text, source=url)

            if resp.status_code in self.RETRYABLE_STATUS:
                logger.warning(f"Retryable {resp.status_code} from {url} (attempt {attempt + 1})")
                last_error = APIError(f"HTTP {resp.status_code}", status_code=resp.status_code,
                                      response_body=resp.text, source=url)
                self._backoff(attempt)
                continue

            raise APIError(f"HTTP {resp.status_code} from {url}",
                           status_code=resp.status_code, response_body=resp.text, source=url)

        raise last_error or APIError(f"Max retries exceeded for {url}", source=url)

    def _backoff(self, attempt):
        if attempt < self.max_retries:
            time.sleep(min(0.5 * 2 ** attempt, self.MAX_BACKOFF))

    def close(self):
        self.session.close()
