# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Bearer token authentication for CRM API calls

Tokens are issued by the external auth service; this module only turns
whatever token is current into request headers.
"""
import logging
from typing import Callable, Dict, Optional, Union

import config

logger = logging.getLogger(__name__)

TokenSource = Union[str, Callable[[], Optional[str]], None]


class BearerAuth:
    """Supplies Authorization headers from a static token or a token provider"""

    def __init__(self, token: TokenSource = None):
        # A callable lets the session layer hand out refreshed tokens
        self._token_source = token if token is not None else config.API_TOKEN

    def get_token(self) -> Optional[str]:
        """Get the current access token"""
        source = self._token_source
        token = source() if callable(source) else source
        return token or None

    def is_authenticated(self) -> bool:
        """Check whether a token is available"""
        return bool(self.get_token())

    def get_headers(self) -> Optional[Dict[str, str]]:
        """Get authorization headers for API calls"""
        access_token = self.get_token()
        if not access_token:
            logger.error("Cannot get headers - no access token")
            return None

        return {
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }
