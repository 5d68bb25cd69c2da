"""
clients.py

One authenticated client per builder endpoint. A client pairs the relay
provider for that builder with the base chain connection, which is used to
resolve the chain id up front and later to look up receipts.
"""

import enum
import logging
import time
from typing import Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound

from .errors import ClientInitError
from .registry import BuilderDescriptor
from .transport import RelayProvider

logger = logging.getLogger(__name__)

BLOCK_TIME_SECONDS = 12


class BundleInclusion(enum.Enum):
    INCLUDED = "included"
    BLOCK_PASSED_WITHOUT_INCLUSION = "block_passed_without_inclusion"
    TIMEOUT = "timeout"


def _block_tag(block):
    return hex(block) if isinstance(block, int) else block


class BuilderClient:
    def __init__(self, descriptor: BuilderDescriptor, w3: Web3, provider: RelayProvider, chain_id: int):
        self.descriptor = descriptor
        self.w3 = w3
        self.provider = provider
        self.chain_id = chain_id

    @property
    def builder_id(self):
        return self.descriptor.id

    def request(self, method, params):
        """Send one JSON-RPC call to the builder relay and return the raw response dict."""
        return self.provider.relay_request(method, params)

    def simulate(self, signed_transactions, block_tag, state_block_tag=None, block_timestamp=None):
        params = {
            "txs": list(signed_transactions),
            "blockNumber": _block_tag(block_tag),
            "stateBlockNumber": _block_tag(state_block_tag) if state_block_tag is not None else "latest",
        }
        if block_timestamp is not None:
            params["timestamp"] = block_timestamp
        return self.request("eth_callBundle", [params])

    def fetch_receipts(self, tx_hashes):
        receipts = []
        for tx_hash in tx_hashes:
            try:
                receipts.append(self.w3.eth.get_transaction_receipt(tx_hash))
            except TransactionNotFound:
                receipts.append(None)
        return receipts

    def wait_for_inclusion(self, tx_hashes, target_block_number, timeout=300, poll_interval=BLOCK_TIME_SECONDS):
        """
        Block until `target_block_number` is mined, then check whether every
        transaction of the bundle landed in it.
        """
        deadline = time.time() + timeout
        while self.w3.eth.block_number < target_block_number:
            if time.time() > deadline:
                return BundleInclusion.TIMEOUT
            time.sleep(poll_interval)

        receipts = self.fetch_receipts(tx_hashes)
        if all(r is not None and r["blockNumber"] == target_block_number for r in receipts):
            return BundleInclusion.INCLUDED
        return BundleInclusion.BLOCK_PASSED_WITHOUT_INCLUSION

    def __repr__(self):
        return f"BuilderClient({self.builder_id} @ {self.descriptor.url})"


class ClientFactory:
    """Builds builder clients and caches them by builder id."""

    def __init__(self, w3: Web3, auth_signer: LocalAccount, vendor_auth: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.w3 = w3
        self.auth_signer = auth_signer
        self.vendor_auth = vendor_auth
        self.timeout = timeout
        self._cache: Dict[str, BuilderClient] = {}

    def create(self, descriptor: BuilderDescriptor) -> BuilderClient:
        try:
            chain_id = self.w3.eth.chain_id
        except Exception as e:
            raise ClientInitError(descriptor.id, f"chain id lookup failed ({e})") from e

        headers = {}
        if descriptor.requires_auth_header and self.vendor_auth:
            headers["Authorization"] = self.vendor_auth

        provider = RelayProvider(self.auth_signer, descriptor.url, headers=headers, timeout=self.timeout)
        logger.debug("Created client for %s (chain %s)", descriptor.id, chain_id)
        return BuilderClient(descriptor, self.w3, provider, chain_id)

    def get_or_create(self, descriptor: BuilderDescriptor) -> BuilderClient:
        client = self._cache.get(descriptor.id)
        if client is None:
            client = self.create(descriptor)
            self._cache[descriptor.id] = client
        return client

    def cached(self):
        return dict(self._cache)
