"""
Client for the hosted backend functions.
PDF generation and e-mail delivery run as named serverless functions that
take a JSON body and answer with JSON.
"""
import logging
from typing import Optional, Dict, Any

import requests
from django.conf import settings

from .exceptions import FunctionInvocationError

logger = logging.getLogger(__name__)

GENERATE_QUOTE_PDF = 'generate-quote-pdf'
GENERATE_INVOICE_PDF = 'generate-invoice-pdf'
SEND_QUOTE_EMAIL = 'send-quote-email'
SEND_EMAIL = 'send-email'
SEND_ORDER_TRACKING_LINK = 'send-order-tracking-link'


class BackendFunctionsClient:
    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.base_url = (base_url if base_url is not None else settings.FUNCTIONS_BASE_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else settings.FUNCTIONS_API_KEY
        self.timeout = timeout or settings.FUNCTIONS_TIMEOUT

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json'
        }
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def invoke(self, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Invoke function `name` with a JSON body and return its JSON answer.

        Raises FunctionInvocationError when the function is not configured,
        unreachable, answers non-2xx, answers something other than a JSON
        object, or answers with an `error` key.
        """
        if not self.base_url:
            raise FunctionInvocationError(name, 'FUNCTIONS_BASE_URL is not configured')

        url = f"{self.base_url}/{name}"
        try:
            response = requests.post(url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.error(f"Function {name} timed out after {self.timeout}s")
            raise FunctionInvocationError(name, 'Request timed out')
        except requests.exceptions.RequestException as e:
            logger.error(f"Function {name} request failed: {str(e)}")
            raise FunctionInvocationError(name, str(e))

        if response.status_code >= 400:
            logger.error(f"Function {name} returned HTTP {response.status_code}: {response.text[:500]}")
            raise FunctionInvocationError(name, f"HTTP {response.status_code}", response.status_code)

        try:
            data = response.json() if response.content else {}
        except ValueError:
            raise FunctionInvocationError(name, 'Invalid JSON response', response.status_code)

        if not isinstance(data, dict):
            raise FunctionInvocationError(name, 'Unexpected response body', response.status_code)
        if data.get('error'):
            raise FunctionInvocationError(name, str(data['error']), response.status_code)

        logger.info(f"Function {name} invoked successfully")
        return data


def invoke_function(name: str, body: Dict[str, Any]) -> Dict[str, Any]:
    return BackendFunctionsClient().invoke(name, body)


def invoke_function_best_effort(name: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Invoke a function whose failure must not abort the caller (notifications)."""
    try:
        return invoke_function(name, body)
    except FunctionInvocationError as e:
        logger.warning(f"Non-critical function call failed: {e.message}")
        return None
