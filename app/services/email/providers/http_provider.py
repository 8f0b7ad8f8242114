# app/services/email/providers/http_provider.py
"""
Shared plumbing for backends reached over a JSON HTTP API.

Status mapping:
- 401/403: EmailAuthError (never retried)
- 429 and 5xx: retryable DeliveryError
- other 4xx: DeliveryError that retrying cannot fix
"""

import logging
from typing import Any, Dict

import httpx

from app.core.exceptions import DeliveryError, EmailAuthError
from ..provider_interface import EmailProviderInterface

logger = logging.getLogger(__name__)


class HttpEmailProvider(EmailProviderInterface):
    """Base class for HTTP API email backends."""

    def _post(
        self,
        url: str,
        *,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        timeout: float
    ) -> httpx.Response:
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise DeliveryError(f"{self.name} request timed out after {timeout}s", provider=self.code)
        except httpx.RequestError as e:
            raise DeliveryError(f"{self.name} request failed: {e}", provider=self.code)

        if response.status_code in (401, 403):
            raise EmailAuthError(
                f"{self.name} rejected the credentials ({response.status_code}): {self._error_text(response)}",
                provider=self.code,
            )
        if response.status_code == 429 or response.status_code >= 500:
            raise DeliveryError(
                f"{self.name} error {response.status_code}: {self._error_text(response)}",
                provider=self.code,
            )
        if response.status_code >= 400:
            raise DeliveryError(
                f"{self.name} error {response.status_code}: {self._error_text(response)}",
                retryable=False,
                provider=self.code,
            )
        return response

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:300]
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or body.get("errors")
            if message:
                return str(message)[:300]
        return str(body)[:300]
