"""
registry.py

Static table of known block builders. Each entry names the relay/RPC endpoint
bundles are posted to and whether the endpoint wants an Authorization header
on top of the usual X-Flashbots-Signature.
"""

from dataclasses import dataclass

VENDOR_BUILDER_ID = "bloxroute"


@dataclass(frozen=True)
class BuilderDescriptor:
    id: str
    url: str
    requires_auth_header: bool = False


# ----------------------
# Known builders (order is dispatch order)
# ----------------------
DEFAULT_BUILDERS = (
    BuilderDescriptor("beaver", "https://rpc.beaverbuild.org/"),
    BuilderDescriptor("rsync", "https://rsync-builder.xyz/"),
    BuilderDescriptor("builder0x69", "https://builder0x69.io"),
    BuilderDescriptor("flashbots", "https://relay.flashbots.net"),
    BuilderDescriptor("titan", "https://rpc.titanbuilder.xyz/"),
    BuilderDescriptor(VENDOR_BUILDER_ID, "https://mev.api.blxrbdn.com", requires_auth_header=True),
    BuilderDescriptor("f1b", "https://rpc.f1b.io"),
    BuilderDescriptor("buildai", "https://buildai.net/"),
    BuilderDescriptor("blocknative", "https://api.blocknative.com/v1/auction"),
    BuilderDescriptor("eth-builder", "https://eth-builder.com/"),
    BuilderDescriptor("boba-builder", "https://boba-builder.com/searcher/bundle"),
    BuilderDescriptor("payload", "https://rpc.payload.de"),
    BuilderDescriptor("eden", "https://api.edennetwork.io/v1/bundle"),
    BuilderDescriptor("eigenphi", "https://builder.eigenphi.io/"),
    BuilderDescriptor("loki", "https://rpc.lokibuilder.xyz/"),
)


class BuilderRegistry:
    """Immutable, ordered set of builder descriptors keyed by id."""

    def __init__(self, descriptors=DEFAULT_BUILDERS):
        by_id = {}
        for descriptor in descriptors:
            if descriptor.id in by_id:
                raise ValueError(f"duplicate builder id: {descriptor.id}")
            by_id[descriptor.id] = descriptor
        self._by_id = by_id
        self._ordered = tuple(by_id.values())

    def list_builders(self):
        return self._ordered

    def ids(self):
        return tuple(self._by_id)

    def get(self, builder_id: str) -> BuilderDescriptor:
        return self._by_id[builder_id]

    def __contains__(self, builder_id):
        return builder_id in self._by_id

    def __iter__(self):
        return iter(self._ordered)

    def __len__(self):
        return len(self._ordered)

    def __repr__(self):
        return f"BuilderRegistry({', '.join(self._by_id)})"
