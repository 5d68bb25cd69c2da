"""
adapters.py

Wire formats for "submit a bundle". Most builders speak the Flashbots
`eth_sendBundle` dialect; bloXroute has its own `blxr_submit_bundle` call with
different field names, 0x-less transactions and an Authorization header.

Both adapters hand back either a RelayError (the relay answered with a JSON-RPC
error) or a BundleSubmission decorated with the parsed transactions. Anything
raised out of `submit` is a transport fault or a malformed answer.
"""

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

import rlp
from eth_account import Account
from eth_utils import big_endian_to_int
from hexbytes import HexBytes
from web3 import Web3

from .errors import TransportFault
from .registry import VENDOR_BUILDER_ID

logger = logging.getLogger(__name__)


# ----------------------
# Transaction parsing
# ----------------------
def parse_signed_transaction(signed_transaction) -> Tuple[str, int]:
    """
    Return (sender, nonce) of a raw signed transaction. Typed (EIP-2718)
    envelopes carry the nonce as the second RLP field after the type byte,
    legacy transactions as the first.
    """
    raw = HexBytes(signed_transaction)
    if len(raw) == 0:
        raise ValueError("empty transaction")

    sender = Account.recover_transaction(raw)
    if raw[0] <= 0x7F:
        nonce = big_endian_to_int(rlp.decode(raw[1:])[1])
    else:
        nonce = big_endian_to_int(rlp.decode(raw)[0])
    return sender, nonce


def transaction_hash(signed_transaction) -> str:
    return Web3.to_hex(Web3.keccak(HexBytes(signed_transaction)))


# ----------------------
# Result shapes
# ----------------------
@dataclass(frozen=True)
class BundleOptions:
    min_timestamp: Optional[int] = None
    max_timestamp: Optional[int] = None
    reverting_tx_hashes: Optional[Sequence[str]] = None
    replacement_uuid: Optional[str] = None


@dataclass(frozen=True)
class RelayError:
    code: Any
    message: Any

    @property
    def reason(self):
        return f"RPC error. Code: {self.code} Message: {self.message}"


@dataclass(frozen=True)
class BundleTransaction:
    signed_transaction: str
    hash: str
    account: str
    nonce: Optional[int]


@dataclass
class BundleSubmission:
    bundle_transactions: List[BundleTransaction]
    target_block_number: int
    bundle_hash: Optional[str]
    client: Any = field(repr=False, compare=False)
    options: BundleOptions = field(default_factory=BundleOptions)

    def _hashes(self):
        return [tx.hash for tx in self.bundle_transactions]

    def wait(self, timeout=300):
        return self.client.wait_for_inclusion(self._hashes(), self.target_block_number, timeout=timeout)

    def simulate(self):
        return self.client.simulate(
            [tx.signed_transaction for tx in self.bundle_transactions],
            self.target_block_number,
            None,
            self.options.min_timestamp,
        )

    def receipts(self):
        return self.client.fetch_receipts(self._hashes())

    def as_dict(self):
        return {
            "bundle_hash": self.bundle_hash,
            "target_block_number": self.target_block_number,
            "bundle_transactions": [
                {
                    "signed_transaction": tx.signed_transaction,
                    "hash": tx.hash,
                    "account": tx.account,
                    "nonce": tx.nonce,
                }
                for tx in self.bundle_transactions
            ],
        }


# ----------------------
# Adapters
# ----------------------
class ProtocolAdapter(abc.ABC):
    method: str = ""

    def __init__(self, transaction_parser: Callable[[str], Tuple[str, int]] = parse_signed_transaction):
        self.transaction_parser = transaction_parser

    @abc.abstractmethod
    def build_params(self, transactions, target_block_number, options):
        """Relay-specific JSON-RPC params for the bundle."""

    def submit(self, client, transactions, target_block_number, options=None):
        options = options or BundleOptions()
        params = self.build_params(list(transactions), target_block_number, options)
        response = client.request(self.method, params)
        return self.normalize(client, response, transactions, target_block_number, options)

    def _describe(self, signed_transaction):
        # the relay already accepted the bundle; an undecodable transaction
        # only loses its sender and nonce
        try:
            return self.transaction_parser(signed_transaction)
        except Exception as e:
            logger.debug("Could not decode %s: %s", signed_transaction, e)
            return None, None

    def normalize(self, client, response, transactions, target_block_number, options):
        if not isinstance(response, dict):
            raise TransportFault(f"malformed relay response: {response!r}")

        error = response.get("error")
        if error is not None:
            if isinstance(error, dict):
                return RelayError(code=error.get("code"), message=error.get("message"))
            return RelayError(code=None, message=error)

        bundle_transactions = []
        for signed_transaction in transactions:
            account, nonce = self._describe(signed_transaction)
            bundle_transactions.append(
                BundleTransaction(
                    signed_transaction=signed_transaction,
                    hash=transaction_hash(signed_transaction),
                    account=account or "0x0",
                    nonce=nonce,
                )
            )

        result = response.get("result")
        bundle_hash = result.get("bundleHash") if isinstance(result, dict) else None
        return BundleSubmission(
            bundle_transactions=bundle_transactions,
            target_block_number=target_block_number,
            bundle_hash=bundle_hash,
            client=client,
            options=options,
        )


class StandardAdapter(ProtocolAdapter):
    method = "eth_sendBundle"

    def build_params(self, transactions, target_block_number, options):
        params = {
            "txs": transactions,
            "blockNumber": hex(target_block_number),
        }
        optional = {
            "minTimestamp": options.min_timestamp,
            "maxTimestamp": options.max_timestamp,
            "revertingTxHashes": list(options.reverting_tx_hashes) if options.reverting_tx_hashes else None,
            "replacementUuid": options.replacement_uuid,
        }
        params.update({k: v for k, v in optional.items() if v is not None})
        return [params]


class VendorAuthGatedAdapter(ProtocolAdapter):
    method = "blxr_submit_bundle"

    def __init__(self, frontrunning=False, enable_backrun_protection=True, **kwargs):
        super().__init__(**kwargs)
        self.frontrunning = frontrunning
        self.enable_backrun_protection = enable_backrun_protection

    def build_params(self, transactions, target_block_number, options):
        params = {
            "transaction": [tx[2:] if tx.startswith("0x") else tx for tx in transactions],
            "block_number": hex(target_block_number),
        }
        optional = {
            "min_timestamp": options.min_timestamp,
            "max_timestamp": options.max_timestamp,
            "reverting_hashes": list(options.reverting_tx_hashes) if options.reverting_tx_hashes else None,
            "uuid": options.replacement_uuid,
        }
        params.update({k: v for k, v in optional.items() if v is not None})
        params["frontrunning"] = self.frontrunning
        params["enable_backrunme"] = self.enable_backrun_protection
        params["mev_builders"] = {"all": ""}
        return params


def select_adapter(builder_id, vendor_auth, transaction_parser=parse_signed_transaction):
    """
    Pick the wire format for a builder. The vendor builder is only reachable
    with a credential; without one it gets no adapter and is not dispatched.
    """
    if builder_id == VENDOR_BUILDER_ID:
        if not vendor_auth:
            logger.debug("No credential for %s, skipping", builder_id)
            return None
        return VendorAuthGatedAdapter(transaction_parser=transaction_parser)
    return StandardAdapter(transaction_parser=transaction_parser)
