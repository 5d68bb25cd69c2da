"""
submitter.py

Fan one bundle out to every known builder at once and fold the answers into
a single result. Each builder is submitted to independently: a relay error or
a dead endpoint becomes a failed entry for that builder and never stops the
others. The call returns once every dispatched submission has settled.
"""

import asyncio
import functools
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Optional, Tuple

from eth_account import Account
from eth_utils import is_hexstr, remove_0x_prefix
from web3 import Web3

from .adapters import BundleOptions, RelayError, parse_signed_transaction, select_adapter
from .clients import ClientFactory
from .errors import BundleValidationError, ClientInitError, ConfigError
from .registry import VENDOR_BUILDER_ID, BuilderDescriptor, BuilderRegistry

logger = logging.getLogger(__name__)

MAX_BLOCK_NUMBER = 2**256 - 1


# ----------------------
# Inputs
# ----------------------
@dataclass(frozen=True)
class Bundle:
    transactions: Tuple[str, ...]
    block_number: int

    def __post_init__(self):
        if isinstance(self.transactions, (str, bytes)) or not self.transactions:
            raise BundleValidationError("bundle needs a non-empty list of signed transactions")

        normalized = []
        for i, tx in enumerate(self.transactions):
            if isinstance(tx, (bytes, bytearray)):
                tx = Web3.to_hex(tx)
            if not isinstance(tx, str) or not is_hexstr(tx) or not remove_0x_prefix(tx):
                raise BundleValidationError(f"transaction #{i} is not a signed transaction hex string: {tx!r}")
            normalized.append(tx)
        object.__setattr__(self, "transactions", tuple(normalized))

        block = self.block_number
        if isinstance(block, bool) or not isinstance(block, int):
            raise BundleValidationError(f"block number must be an integer, got {block!r}")
        if not 0 <= block <= MAX_BLOCK_NUMBER:
            raise BundleValidationError(f"block number out of range: {block}")

    @classmethod
    def from_mapping(cls, data: Mapping):
        if not isinstance(data, Mapping):
            raise BundleValidationError(f"expected a Bundle or a mapping, got {type(data).__name__}")
        block = data.get("block_number", data.get("blockNumber"))
        return cls(transactions=tuple(data.get("transactions") or ()), block_number=block)


@dataclass(frozen=True)
class PrebuiltClient:
    """A caller-owned client, used as-is."""
    client: Any


@dataclass(frozen=True)
class Descriptor:
    """An endpoint to build a one-off client for."""
    descriptor: BuilderDescriptor

    @classmethod
    def from_url(cls, builder_id, url):
        return cls(BuilderDescriptor(builder_id, url, requires_auth_header=builder_id == VENDOR_BUILDER_ID))


# ----------------------
# Outputs
# ----------------------
@dataclass
class SubmissionOutcome:
    builder_id: str
    success: bool
    response: Any = None
    error_reason: Optional[str] = None

    def as_dict(self):
        if self.success:
            response = self.response.as_dict() if hasattr(self.response, "as_dict") else self.response
            return {"success": True, "response": response}
        return {"success": False, "error": {"reason": self.error_reason}}


@dataclass
class AggregateResult:
    bundle_hash: Optional[str]
    results: Dict[str, SubmissionOutcome]

    def succeeded(self):
        return [builder_id for builder_id, outcome in self.results.items() if outcome.success]

    def failed(self):
        return [builder_id for builder_id, outcome in self.results.items() if not outcome.success]

    def as_dict(self):
        return {
            "bundle_hash": self.bundle_hash,
            "results": {builder_id: outcome.as_dict() for builder_id, outcome in self.results.items()},
        }


# ----------------------
# Orchestrator
# ----------------------
class BundleSubmitter:
    def __init__(self, w3: Web3, auth_signer=None, vendor_auth: Optional[str] = None,
                 registry: Optional[BuilderRegistry] = None, timeout: Optional[float] = None,
                 client_factory: Optional[ClientFactory] = None,
                 transaction_parser=parse_signed_transaction):
        """
        Args:
            w3: base chain connection, used to resolve the chain id and receipts
            auth_signer: account signing relay requests; a random one if omitted
            vendor_auth: bloXroute Authorization token; bloXroute is skipped without it
            registry: builders to target, the default public set if omitted
            timeout: per-request HTTP timeout handed to the relay transport
        """
        self.w3 = w3
        self.auth_signer = auth_signer or Account.create()
        self.vendor_auth = vendor_auth
        self.registry = registry if registry is not None else BuilderRegistry()
        self.client_factory = client_factory or ClientFactory(w3, self.auth_signer, vendor_auth, timeout)
        self.transaction_parser = transaction_parser
        self._clients = None
        self._init_lock = asyncio.Lock()

    def clients(self):
        return MappingProxyType(self._clients or {})

    async def initialize(self):
        """Build the registry clients once per submitter; safe to call concurrently."""
        if self._clients is not None:
            return self._clients
        async with self._init_lock:
            if self._clients is None:
                self._clients = await asyncio.to_thread(self._build_registry_clients)
        return self._clients

    def _build_registry_clients(self):
        clients = {}
        for descriptor in self.registry:
            try:
                clients[descriptor.id] = self.client_factory.get_or_create(descriptor)
            except ClientInitError as e:
                logger.warning("%s; builder left out", e)
        logger.info("Initialised %d/%d builder clients", len(clients), len(self.registry))
        return clients

    def _build_custom_clients(self, custom_builders, excluded):
        clients = {}
        for builder_id, entry in custom_builders.items():
            if builder_id in excluded:
                continue
            if isinstance(entry, str):
                entry = Descriptor.from_url(builder_id, entry)

            if isinstance(entry, PrebuiltClient):
                clients[builder_id] = entry.client
            elif isinstance(entry, Descriptor):
                try:
                    clients[builder_id] = self.client_factory.create(entry.descriptor)
                except ClientInitError as e:
                    logger.warning("%s; custom builder left out", e)
            else:
                raise ConfigError(
                    f"custom builder '{builder_id}' must be a PrebuiltClient, a Descriptor or a URL, got {entry!r}"
                )
        return clients

    async def submit_to_all(self, bundle, exclude=None, custom_builders=None, options: Optional[BundleOptions] = None):
        """
        Submit `bundle` to every builder not in `exclude`, plus `custom_builders`
        (which override registry builders of the same id).

        Returns an AggregateResult. Per-builder failures are reported in
        `results`; only a malformed bundle or custom builder entry raises.
        """
        if not isinstance(bundle, Bundle):
            bundle = Bundle.from_mapping(bundle)
        excluded = {exclude} if isinstance(exclude, str) else set(exclude or ())
        custom_builders = custom_builders or {}
        if not isinstance(custom_builders, Mapping):
            raise ConfigError("custom_builders must be a mapping of builder id to builder")

        base_clients = await self.initialize()
        custom_clients = {}
        if custom_builders:
            custom_clients = await asyncio.to_thread(self._build_custom_clients, custom_builders, excluded)
        all_clients = {**base_clients, **custom_clients}

        dispatch = []
        for builder_id, client in all_clients.items():
            if builder_id in excluded:
                continue
            adapter = select_adapter(builder_id, self.vendor_auth, self.transaction_parser)
            if adapter is None:
                continue
            dispatch.append((builder_id, client, adapter))

        if not dispatch:
            logger.info("No builders to submit to for block %d", bundle.block_number)
            return AggregateResult(bundle_hash=None, results={})

        logger.debug("Dispatching bundle for block %d to %s", bundle.block_number, [d[0] for d in dispatch])
        # one worker per target, so a hanging relay never holds up the rest
        executor = ThreadPoolExecutor(max_workers=len(dispatch), thread_name_prefix="bundle-fanout")
        try:
            outcomes = await asyncio.gather(
                *(self._submit_one(executor, builder_id, client, adapter, bundle, options)
                  for builder_id, client, adapter in dispatch)
            )
        finally:
            executor.shutdown(wait=False)

        return self._aggregate(outcomes)

    def submit_to_all_sync(self, bundle, exclude=None, custom_builders=None, options=None):
        return asyncio.run(self.submit_to_all(bundle, exclude, custom_builders, options))

    async def _submit_one(self, executor, builder_id, client, adapter, bundle, options):
        loop = asyncio.get_running_loop()
        submit = functools.partial(adapter.submit, client, list(bundle.transactions), bundle.block_number, options)
        try:
            result = await loop.run_in_executor(executor, submit)
        except Exception as e:
            logger.warning("Submission to %s failed: %s", builder_id, e)
            return SubmissionOutcome(builder_id, success=False, error_reason=f"Catch Error: {e}")

        if isinstance(result, RelayError):
            logger.warning("Submission to %s rejected: %s", builder_id, result.reason)
            return SubmissionOutcome(builder_id, success=False, error_reason=result.reason)

        logger.debug("Submission to %s accepted (bundle hash %s)", builder_id, result.bundle_hash)
        return SubmissionOutcome(builder_id, success=True, response=result)

    @staticmethod
    def _aggregate(outcomes):
        bundle_hash = None
        results = {}
        for outcome in outcomes:
            if bundle_hash is None and outcome.success:
                bundle_hash = getattr(outcome.response, "bundle_hash", None) or None
            results[outcome.builder_id] = outcome

        accepted = sum(1 for o in outcomes if o.success)
        logger.info("Bundle accepted by %d/%d builders (hash %s)", accepted, len(outcomes), bundle_hash)
        return AggregateResult(bundle_hash=bundle_hash, results=results)
