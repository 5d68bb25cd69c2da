import asyncio
import threading

import pytest

from bundle_fanout.adapters import BundleSubmission
from bundle_fanout.errors import BundleValidationError, ConfigError, TransportFault
from bundle_fanout.registry import DEFAULT_BUILDERS, BuilderDescriptor, BuilderRegistry
from bundle_fanout.submitter import (
    AggregateResult,
    Bundle,
    BundleSubmitter,
    Descriptor,
    PrebuiltClient,
)
from tests.fakes import FakeClient, FakeClientFactory, FakeWeb3, relay_error, relay_ok, stub_parser

ALL_IDS = [d.id for d in DEFAULT_BUILDERS]
BUNDLE = Bundle(transactions=("0xaa", "0xbb"), block_number=15000000)


def make_submitter(behaviors=None, vendor_auth=None, failing=(), registry=None):
    factory = FakeClientFactory(behaviors, failing=failing)
    submitter = BundleSubmitter(
        FakeWeb3(),
        vendor_auth=vendor_auth,
        registry=registry,
        client_factory=factory,
        transaction_parser=stub_parser,
    )
    return submitter, factory


class TestBundle:
    def test_normalizes_bytes(self):
        bundle = Bundle(transactions=[b"\xaa", "0xbb"], block_number=1)
        assert bundle.transactions == ("0xaa", "0xbb")

    @pytest.mark.parametrize("transactions", [(), "0xaa", ("0x",), ("not-hex",), (123,)])
    def test_rejects_bad_transactions(self, transactions):
        with pytest.raises(BundleValidationError):
            Bundle(transactions=transactions, block_number=1)

    @pytest.mark.parametrize("block", [-1, 2**256, "15000000", 1.5, True, None])
    def test_rejects_bad_block_numbers(self, block):
        with pytest.raises(BundleValidationError):
            Bundle(transactions=("0xaa",), block_number=block)

    def test_from_mapping_accepts_both_spellings(self):
        assert Bundle.from_mapping({"transactions": ["0xaa"], "blockNumber": 5}).block_number == 5
        assert Bundle.from_mapping({"transactions": ["0xaa"], "block_number": 6}).block_number == 6


@pytest.mark.asyncio
async def test_all_relays_reject_excluded_builder_has_no_entry():
    submitter, factory = make_submitter()

    result = await submitter.submit_to_all(BUNDLE, exclude=["flashbots"])

    assert isinstance(result, AggregateResult)
    assert result.bundle_hash is None
    assert "flashbots" not in result.results
    assert "bloxroute" not in result.results
    expected = [i for i in ALL_IDS if i not in ("flashbots", "bloxroute")]
    assert list(result.results) == expected
    for outcome in result.results.values():
        assert outcome.as_dict() == {
            "success": False,
            "error": {"reason": "RPC error. Code: -32000 Message: bundle too large"},
        }
    assert factory.cached()["flashbots"].calls == []


@pytest.mark.asyncio
async def test_single_success_provides_bundle_hash():
    submitter, _ = make_submitter({"builder0x69": relay_ok("0x123")})

    result = await submitter.submit_to_all(BUNDLE)

    assert result.bundle_hash == "0x123"
    assert result.succeeded() == ["builder0x69"]
    assert len(result.failed()) == len(ALL_IDS) - 2
    response = result.results["builder0x69"].response
    assert isinstance(response, BundleSubmission)
    assert [tx.signed_transaction for tx in response.bundle_transactions] == ["0xaa", "0xbb"]


@pytest.mark.asyncio
async def test_single_success_with_default_transaction_parser():
    factory = FakeClientFactory({"builder0x69": relay_ok("0x123")})
    submitter = BundleSubmitter(FakeWeb3(), client_factory=factory)

    result = await submitter.submit_to_all(BUNDLE)

    assert result.bundle_hash == "0x123"
    assert result.succeeded() == ["builder0x69"]
    entry = result.as_dict()["results"]["builder0x69"]
    assert entry["success"] is True
    assert [(tx["account"], tx["nonce"]) for tx in entry["response"]["bundle_transactions"]] == [
        ("0x0", None),
        ("0x0", None),
    ]


@pytest.mark.asyncio
async def test_bundle_hash_follows_dispatch_order_not_settle_order():
    titan_answered = threading.Event()

    def slow_beaver(method, params):
        titan_answered.wait(5)
        return relay_ok("0xbeaver")

    def titan(method, params):
        titan_answered.set()
        return relay_ok("0xtitan")

    submitter, _ = make_submitter({"beaver": slow_beaver, "titan": titan})
    result = await submitter.submit_to_all(BUNDLE)
    assert result.bundle_hash == "0xbeaver"


@pytest.mark.asyncio
async def test_success_without_hash_is_skipped_for_bundle_hash():
    submitter, _ = make_submitter({"beaver": relay_ok(), "rsync": relay_ok("0xrsync")})
    result = await submitter.submit_to_all(BUNDLE)
    assert result.succeeded() == ["beaver", "rsync"]
    assert result.bundle_hash == "0xrsync"


@pytest.mark.asyncio
async def test_transport_fault_is_contained():
    submitter, _ = make_submitter({
        "beaver": TransportFault("connection reset"),
        "rsync": RuntimeError("unexpected"),
        "titan": relay_ok("0xabc"),
    })

    result = await submitter.submit_to_all(BUNDLE)

    assert result.results["beaver"].error_reason == "Catch Error: connection reset"
    assert result.results["rsync"].error_reason == "Catch Error: unexpected"
    assert result.results["titan"].success
    assert result.bundle_hash == "0xabc"


@pytest.mark.asyncio
async def test_every_dispatch_failing_reports_no_hash():
    submitter, _ = make_submitter({i: TransportFault("down") for i in ALL_IDS})
    result = await submitter.submit_to_all(BUNDLE)
    assert result.bundle_hash is None
    assert result.succeeded() == []
    assert all(not o.success for o in result.results.values())


@pytest.mark.asyncio
async def test_vendor_builder_uses_vendor_protocol_when_configured():
    submitter, factory = make_submitter({"bloxroute": relay_ok("0xb")}, vendor_auth="token")

    result = await submitter.submit_to_all(BUNDLE)

    assert result.results["bloxroute"].success
    method, params = factory.cached()["bloxroute"].calls[0]
    assert method == "blxr_submit_bundle"
    assert params["transaction"] == ["aa", "bb"]
    assert params["frontrunning"] is False
    assert params["enable_backrunme"] is True
    assert factory.cached()["titan"].calls[0][0] == "eth_sendBundle"


@pytest.mark.asyncio
async def test_vendor_builder_silently_skipped_without_credential():
    submitter, factory = make_submitter()
    result = await submitter.submit_to_all(BUNDLE)
    assert "bloxroute" not in result.results
    assert factory.cached()["bloxroute"].calls == []


@pytest.mark.asyncio
async def test_prebuilt_custom_client_used_as_is():
    submitter, factory = make_submitter()
    custom = FakeClient("mine", relay_ok("0xmine"))

    result = await submitter.submit_to_all(BUNDLE, custom_builders={"mine": PrebuiltClient(custom)})

    assert len(custom.calls) == 1
    assert "mine" not in factory.created
    assert list(result.results)[-1] == "mine"
    assert result.bundle_hash == "0xmine"


@pytest.mark.asyncio
async def test_custom_builder_overrides_registry_entry_in_place():
    submitter, factory = make_submitter()
    custom = FakeClient("titan", relay_ok("0xcustom"))

    result = await submitter.submit_to_all(BUNDLE, custom_builders={"titan": PrebuiltClient(custom)})

    assert custom.calls
    assert factory.cached()["titan"].calls == []
    assert list(result.results).index("titan") == ALL_IDS.index("titan")


def test_descriptor_from_url_marks_vendor_builder_as_authenticated():
    assert Descriptor.from_url("bloxroute", "https://my.blxr").descriptor.requires_auth_header is True
    assert Descriptor.from_url("mine", "https://relay.mine").descriptor.requires_auth_header is False


@pytest.mark.asyncio
async def test_custom_vendor_url_gets_authenticated_descriptor():
    submitter, factory = make_submitter({"bloxroute": relay_ok("0x7")}, vendor_auth="token")

    result = await submitter.submit_to_all(BUNDLE, custom_builders={"bloxroute": "https://my.blxr"})

    custom = factory.descriptors[-1]
    assert (custom.id, custom.url, custom.requires_auth_header) == ("bloxroute", "https://my.blxr", True)
    assert result.results["bloxroute"].success


@pytest.mark.asyncio
async def test_custom_descriptor_built_per_call_and_not_cached():
    submitter, factory = make_submitter({"mine": relay_ok("0x1")})
    custom = {"mine": Descriptor.from_url("mine", "https://relay.mine")}

    first = await submitter.submit_to_all(BUNDLE, custom_builders=custom)
    await submitter.submit_to_all(BUNDLE, custom_builders=custom)

    assert first.results["mine"].success
    assert factory.created.count("mine") == 2
    assert "mine" not in factory.cached()
    assert "mine" not in submitter.clients()


@pytest.mark.asyncio
async def test_custom_builder_url_shorthand():
    submitter, factory = make_submitter({"mine": relay_ok("0x1")})
    result = await submitter.submit_to_all(BUNDLE, custom_builders={"mine": "https://relay.mine"})
    assert result.results["mine"].success
    assert "mine" in factory.created


@pytest.mark.asyncio
async def test_excluded_custom_builder_is_not_built():
    submitter, factory = make_submitter()
    result = await submitter.submit_to_all(BUNDLE, exclude={"mine"}, custom_builders={"mine": "https://relay.mine"})
    assert "mine" not in result.results
    assert "mine" not in factory.created


@pytest.mark.asyncio
async def test_bad_custom_builder_entry_raises_before_dispatch():
    submitter, factory = make_submitter()
    with pytest.raises(ConfigError):
        await submitter.submit_to_all(BUNDLE, custom_builders={"mine": 42})
    assert all(not c.calls for c in factory.cached().values())


@pytest.mark.asyncio
async def test_failed_custom_descriptor_is_left_out():
    submitter, _ = make_submitter(failing={"mine"})
    result = await submitter.submit_to_all(BUNDLE, custom_builders={"mine": "https://relay.mine"})
    assert "mine" not in result.results


@pytest.mark.asyncio
async def test_client_init_failure_only_drops_that_builder():
    submitter, factory = make_submitter(failing={"eden"})

    first = await submitter.submit_to_all(BUNDLE)
    second = await submitter.submit_to_all(BUNDLE)

    assert "eden" not in first.results
    assert "eden" not in second.results
    assert "loki" in first.results
    assert factory.created.count("eden") == 1


@pytest.mark.asyncio
async def test_concurrent_first_calls_initialize_once():
    submitter, factory = make_submitter()

    await asyncio.gather(submitter.submit_to_all(BUNDLE), submitter.submit_to_all(BUNDLE))

    assert sorted(factory.created) == sorted(ALL_IDS)
    assert set(submitter.clients()) == set(ALL_IDS)


@pytest.mark.asyncio
async def test_hanging_builder_does_not_hold_up_others():
    release = threading.Event()

    def hanging(method, params):
        release.wait(10)
        return relay_ok("0xlate")

    submitter, factory = make_submitter({"beaver": hanging})
    task = asyncio.ensure_future(submitter.submit_to_all(BUNDLE))

    others = [i for i in ALL_IDS if i not in ("beaver", "bloxroute")]
    for _ in range(200):
        cache = factory.cached()
        if all(i in cache and cache[i].called.is_set() for i in others):
            break
        await asyncio.sleep(0.01)
    else:
        pytest.fail("other builders were never dispatched")

    await asyncio.sleep(0.05)
    assert not task.done()

    release.set()
    result = await task
    assert result.results["beaver"].success
    assert result.bundle_hash == "0xlate"
    assert len(result.results) == len(others) + 1


@pytest.mark.asyncio
async def test_invalid_bundle_raises_before_dispatch():
    submitter, factory = make_submitter()
    with pytest.raises(BundleValidationError):
        await submitter.submit_to_all({"transactions": [], "blockNumber": 1})
    assert factory.created == []


@pytest.mark.asyncio
async def test_mapping_bundle_accepted():
    submitter, factory = make_submitter({"titan": relay_ok("0x1")})
    result = await submitter.submit_to_all({"transactions": ["0xaa"], "blockNumber": 15000000})
    assert result.bundle_hash == "0x1"
    assert factory.cached()["titan"].calls[0][1] == [{"txs": ["0xaa"], "blockNumber": "0xe4e1c0"}]


@pytest.mark.asyncio
async def test_everything_excluded_returns_empty_result():
    submitter, _ = make_submitter()
    result = await submitter.submit_to_all(BUNDLE, exclude=ALL_IDS)
    assert result.bundle_hash is None
    assert result.results == {}


@pytest.mark.asyncio
async def test_registry_is_injected():
    registry = BuilderRegistry([BuilderDescriptor("only", "https://only")])
    submitter, _ = make_submitter({"only": relay_ok("0x9")}, registry=registry)
    result = await submitter.submit_to_all(BUNDLE)
    assert list(result.results) == ["only"]


def test_as_dict_shape():
    submitter, _ = make_submitter({"titan": relay_ok("0x1")})
    result = submitter.submit_to_all_sync(BUNDLE, exclude=[i for i in ALL_IDS if i not in ("titan", "beaver")])

    data = result.as_dict()
    assert data["bundle_hash"] == "0x1"
    assert data["results"]["beaver"] == {
        "success": False,
        "error": {"reason": "RPC error. Code: -32000 Message: bundle too large"},
    }
    titan = data["results"]["titan"]
    assert titan["success"] is True
    assert titan["response"]["bundle_hash"] == "0x1"
    assert titan["response"]["bundle_transactions"][0]["nonce"] == 7


def test_default_signer_is_random():
    first = BundleSubmitter(FakeWeb3())
    second = BundleSubmitter(FakeWeb3())
    assert first.auth_signer.address != second.auth_signer.address


def test_relay_error_code_and_message_in_reason():
    submitter, _ = make_submitter({"titan": relay_error(-32602, "invalid block")})
    result = submitter.submit_to_all_sync(BUNDLE)
    assert result.results["titan"].error_reason == "RPC error. Code: -32602 Message: invalid block"
