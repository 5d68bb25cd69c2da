"""
transport.py

JSON-RPC transport for builder relays, on top of the flashbots provider: every
request body is signed with the searcher identity and sent with the
X-Flashbots-Signature header relays use to attribute bundles. Some relays
additionally want an Authorization header, passed in through `headers`.
"""

import json
import logging
from typing import Any, Dict, Optional

import requests
from eth_account.signers.local import LocalAccount
from flashbots.provider import FlashbotProvider

from .errors import TransportFault

logger = logging.getLogger(__name__)


def _rpc_error_body(response) -> Optional[Dict[str, Any]]:
    if response is None:
        return None
    try:
        body = json.loads(response.content)
    except (TypeError, ValueError):
        return None
    if isinstance(body, dict) and body.get("error") is not None:
        return body
    return None


class RelayProvider(FlashbotProvider):
    def __init__(
        self,
        signature_account: LocalAccount,
        endpoint_uri: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        self.extra_headers = dict(headers or {})
        self.request_timeout = timeout
        request_kwargs: Dict[str, Any] = {"headers": dict(self.extra_headers)}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        super().__init__(signature_account, endpoint_uri, request_kwargs=request_kwargs)

    def get_request_headers(self) -> Dict[str, str]:
        return {**super().get_request_headers(), **self.extra_headers}

    def relay_request(self, method: str, params: Any) -> Dict[str, Any]:
        """
        POST one signed JSON-RPC call. The decoded response is returned as-is,
        `error` member included, also when the relay sends it with a 4xx/5xx.
        Network failures, HTTP failures without a JSON-RPC error body and
        undecodable bodies raise TransportFault.
        """
        logger.debug("POST %s method=%s", self.endpoint_uri, method)
        try:
            return self.make_request(method, params)
        except requests.HTTPError as e:
            body = _rpc_error_body(e.response)
            if body is not None:
                return body
            raise TransportFault(f"{method} to {self.endpoint_uri} failed: {e}") from e
        except requests.RequestException as e:
            raise TransportFault(f"{method} to {self.endpoint_uri} failed: {e}") from e
        except ValueError as e:
            raise TransportFault(f"{method} to {self.endpoint_uri} returned an undecodable body") from e

    def __repr__(self):
        return f"RelayProvider({self.endpoint_uri})"
