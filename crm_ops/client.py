# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
CRM API Client - Shared request handling for the CRM REST endpoints
"""
import logging
import time
from typing import Any, Dict, Iterable, Optional

import requests

import config
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)


class CrmApiError(Exception):
    """Raised when a CRM API call fails"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientApiError(CrmApiError):
    """Server-side failure worth retrying (5xx)"""


# Errors that a retry may fix
TRANSIENT_ERRORS = (
    TransientApiError,
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
)

# Errors safe to retry for non-idempotent writes; a read timeout may mean the write landed
WRITE_RETRY_ERRORS = (
    TransientApiError,
    requests.exceptions.ConnectionError,
)


class CrmClient:
    """Sends authenticated requests to the CRM API"""

    def __init__(self, auth_manager, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.auth = auth_manager
        self.base_url = (base_url or config.API_BASE_URL).rstrip('/')
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.structured_logger = StructuredLogger(__name__)

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                json: Optional[Dict[str, Any]] = None,
                allow_statuses: Iterable[int] = ()) -> requests.Response:
        """
        Send a request and return the response if it succeeded

        Args:
            method: HTTP method
            path: Endpoint path relative to the API root
            params: Query string parameters (None values are dropped)
            json: JSON body
            allow_statuses: Non-2xx statuses the caller handles itself

        Raises:
            CrmApiError: Authentication failure or client error
            TransientApiError: Server error
            requests.exceptions.RequestException: Network failure
        """
        headers = self.auth.get_headers()
        if not headers:
            raise CrmApiError("No valid authentication headers", status_code=401)

        url = self.build_url(path)
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        started = time.monotonic()
        try:
            response = requests.request(method, url, headers=headers, params=params,
                                        json=json, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.error(f"Request timeout for {method} {path}")
            raise
        except requests.exceptions.ConnectionError:
            logger.error(f"Connection error for {method} {path}")
            raise

        duration_ms = (time.monotonic() - started) * 1000
        status = response.status_code
        self.structured_logger.log_api_call(method, path, status_code=status, duration_ms=duration_ms)

        if 200 <= status < 300 or status in allow_statuses:
            return response

        logger.error(f"Response: {response.text[:500]}")

        if status == 401:
            raise CrmApiError("Authentication failed (401)", status_code=status)
        if status >= 500:
            raise TransientApiError(f"Server error {status} for {method} {path}", status_code=status)
        raise CrmApiError(f"Request {method} {path} failed with status {status}", status_code=status)

    @staticmethod
    def parse_json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise CrmApiError(f"Invalid JSON in response: {e}", status_code=response.status_code) from e
