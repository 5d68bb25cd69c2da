"""
config.py

Settings for wiring a submitter from the environment.

Environment variables:
 - RPC_URL (required) Ethereum mainnet RPC used for chain id and receipts
 - BLOXROUTE_AUTH (optional) bloXroute Authorization token; bloXroute is skipped without it
 - AUTH_SIGNER_PRIVKEY (optional) key signing relay requests, random if unset
 - RELAY_TIMEOUT (optional) per-request HTTP timeout in seconds
 - EXCLUDE_BUILDERS (optional) comma separated builder ids
 - CUSTOM_BUILDERS (optional) comma separated id=url pairs
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from eth_account import Account
from web3 import HTTPProvider, Web3

from .errors import ConfigError
from .submitter import BundleSubmitter, Descriptor


def _split_csv(value):
    return tuple(part.strip() for part in (value or "").split(",") if part.strip())


def _parse_custom_builders(value) -> Dict[str, str]:
    builders = {}
    for pair in _split_csv(value):
        builder_id, sep, url = pair.partition("=")
        if not sep or not builder_id.strip() or not url.strip():
            raise ConfigError(f"CUSTOM_BUILDERS entry must look like id=url, got {pair!r}")
        builders[builder_id.strip()] = url.strip()
    return builders


@dataclass(frozen=True)
class SubmitterSettings:
    rpc_url: str
    bloxroute_auth: Optional[str] = None
    auth_signer_key: Optional[str] = None
    relay_timeout: Optional[float] = None
    exclude: Tuple[str, ...] = ()
    custom_builders: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None):
        env = os.environ if environ is None else environ

        rpc_url = env.get("RPC_URL")
        if not rpc_url:
            raise ConfigError("RPC_URL must be set")

        timeout = env.get("RELAY_TIMEOUT")
        if timeout:
            try:
                timeout = float(timeout)
            except ValueError:
                raise ConfigError(f"RELAY_TIMEOUT must be a number, got {timeout!r}") from None
            if timeout <= 0:
                raise ConfigError("RELAY_TIMEOUT must be positive")
        else:
            timeout = None

        return cls(
            rpc_url=rpc_url,
            bloxroute_auth=env.get("BLOXROUTE_AUTH") or None,
            auth_signer_key=env.get("AUTH_SIGNER_PRIVKEY") or None,
            relay_timeout=timeout,
            exclude=_split_csv(env.get("EXCLUDE_BUILDERS")),
            custom_builders=_parse_custom_builders(env.get("CUSTOM_BUILDERS")),
        )

    def custom_builder_inputs(self):
        return {builder_id: Descriptor.from_url(builder_id, url) for builder_id, url in self.custom_builders.items()}


def build_submitter(settings: SubmitterSettings, w3: Optional[Web3] = None) -> BundleSubmitter:
    w3 = w3 or Web3(HTTPProvider(settings.rpc_url))

    auth_signer = None
    if settings.auth_signer_key:
        try:
            auth_signer = Account.from_key(settings.auth_signer_key)
        except Exception as e:
            raise ConfigError(f"AUTH_SIGNER_PRIVKEY is not a valid private key: {e}") from e

    return BundleSubmitter(
        w3,
        auth_signer=auth_signer,
        vendor_auth=settings.bloxroute_auth,
        timeout=settings.relay_timeout,
    )
