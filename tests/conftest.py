import pytest
import requests
from eth_account import Account
from web3 import Web3

from bundle_fanout.registry import DEFAULT_BUILDERS, BuilderRegistry
from tests.fakes import SIGNER_KEY, FakeRelayHTTP


@pytest.fixture
def signer():
    return Account.from_key(SIGNER_KEY)


@pytest.fixture
def legacy_tx(signer):
    tx = {
        "nonce": 3,
        "gasPrice": 20_000_000_000,
        "gas": 21000,
        "to": "0x000000000000000000000000000000000000dEaD",
        "value": 1,
        "data": b"",
        "chainId": 1,
    }
    return Web3.to_hex(signer.sign_transaction(tx).rawTransaction)


@pytest.fixture
def eip1559_tx(signer):
    tx = {
        "type": 2,
        "nonce": 4,
        "maxFeePerGas": 30_000_000_000,
        "maxPriorityFeePerGas": 2_000_000_000,
        "gas": 21000,
        "to": "0x000000000000000000000000000000000000dEaD",
        "value": 1,
        "data": b"",
        "chainId": 1,
    }
    return Web3.to_hex(signer.sign_transaction(tx).rawTransaction)


@pytest.fixture
def registry():
    return BuilderRegistry(DEFAULT_BUILDERS)


@pytest.fixture
def relay_http(monkeypatch):
    http = FakeRelayHTTP()
    monkeypatch.setattr(requests.Session, "post", lambda session, url, *args, **kwargs: http.post(url, *args, **kwargs))
    return http
