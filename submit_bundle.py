#!/usr/bin/env python3
"""
submit_bundle.py
Send one bundle of raw signed transactions to every known block builder and
print what each of them answered.

Environment variables (see bundle_fanout/config.py):
 - RPC_URL (required)
 - BLOXROUTE_AUTH (optional, bloXroute is skipped without it)
 - AUTH_SIGNER_PRIVKEY (optional, random signer if unset)
 - RELAY_TIMEOUT, EXCLUDE_BUILDERS, CUSTOM_BUILDERS (optional)

Run:
 python submit_bundle.py 0x02f8...aa 0x02f8...bb --offset 1
 python submit_bundle.py 0x02f8...aa --block 15000000 --exclude flashbots
"""

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from bundle_fanout import Bundle, BundleValidationError, ConfigError, SubmitterSettings, build_submitter

load_dotenv()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Submit a bundle to all block builders")
    parser.add_argument("transactions", nargs="+", help="raw signed transactions (0x hex)")
    parser.add_argument("--block", type=int, help="target block number")
    parser.add_argument("--offset", type=int, default=1, help="target latest block + offset when --block is not given")
    parser.add_argument("--exclude", action="append", default=[], help="builder id to skip (repeatable)")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    try:
        settings = SubmitterSettings.from_env()
        submitter = build_submitter(settings)
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")

    target_block = args.block
    if target_block is None:
        target_block = submitter.w3.eth.block_number + args.offset
    print(f"Submitting {len(args.transactions)} transaction(s) for block {target_block}")

    try:
        bundle = Bundle(transactions=tuple(args.transactions), block_number=target_block)
    except BundleValidationError as e:
        raise SystemExit(f"Invalid bundle: {e}")

    result = submitter.submit_to_all_sync(
        bundle,
        exclude=set(settings.exclude) | set(args.exclude),
        custom_builders=settings.custom_builder_inputs(),
    )

    for builder_id, outcome in result.results.items():
        if outcome.success:
            print(f"  ✅ {builder_id}: accepted")
        else:
            print(f"  ❌ {builder_id}: {outcome.error_reason}")

    print(json.dumps(result.as_dict(), indent=2))
    if not result.succeeded():
        print("No builder accepted the bundle.")
        return 1
    print(f"Bundle hash: {result.bundle_hash}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
