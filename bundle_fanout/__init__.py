"""Fan a transaction bundle out to many block builders at once."""

from .adapters import (
    BundleOptions,
    BundleSubmission,
    BundleTransaction,
    ProtocolAdapter,
    RelayError,
    StandardAdapter,
    VendorAuthGatedAdapter,
    parse_signed_transaction,
    select_adapter,
)
from .clients import BuilderClient, BundleInclusion, ClientFactory
from .config import SubmitterSettings, build_submitter
from .errors import BundleValidationError, ClientInitError, ConfigError, FanoutError, TransportFault
from .registry import DEFAULT_BUILDERS, VENDOR_BUILDER_ID, BuilderDescriptor, BuilderRegistry
from .submitter import (
    AggregateResult,
    Bundle,
    BundleSubmitter,
    Descriptor,
    PrebuiltClient,
    SubmissionOutcome,
)
from .transport import RelayProvider

__version__ = "0.1.0"

__all__ = [
    "AggregateResult",
    "Bundle",
    "BundleInclusion",
    "BundleOptions",
    "BundleSubmission",
    "BundleSubmitter",
    "BundleTransaction",
    "BundleValidationError",
    "BuilderClient",
    "BuilderDescriptor",
    "BuilderRegistry",
    "ClientFactory",
    "ClientInitError",
    "ConfigError",
    "DEFAULT_BUILDERS",
    "Descriptor",
    "FanoutError",
    "PrebuiltClient",
    "ProtocolAdapter",
    "RelayError",
    "RelayProvider",
    "StandardAdapter",
    "SubmissionOutcome",
    "SubmitterSettings",
    "TransportFault",
    "VENDOR_BUILDER_ID",
    "VendorAuthGatedAdapter",
    "build_submitter",
    "parse_signed_transaction",
    "select_adapter",
]
