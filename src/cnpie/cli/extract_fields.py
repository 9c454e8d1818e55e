"""CLI entrypoint for extracting form fields from project documents."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from cnpie.extraction.config import ExtractionSettings
from cnpie.extraction.result import invalid_request_envelope
from cnpie.extraction.service import ExtractionService, RetryPolicy, build_store


def _read_payload(path: str) -> object:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def _print(payload: dict[str, object]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Extract structured form fields from stored documents")
    parser.add_argument("--input", default="-", help="Request JSON file, or '-' for stdin")
    parser.add_argument("--store-root", default=None, help="Serve references from this local directory")
    parser.add_argument("--retry-transport", action="store_true", help="Retry once after a transient model failure")
    parser.add_argument("--strict-retry", action="store_true", help="Re-ask once with strict format rules on malformed output")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
    )

    try:
        payload = _read_payload(args.input)
        if not isinstance(payload, dict):
            raise ValueError("request must be a JSON object")
        settings = ExtractionSettings.from_env()
    except (OSError, ValueError) as exc:
        _print(invalid_request_envelope(str(exc)))
        return 2

    service = ExtractionService.from_settings(
        settings,
        store=build_store(settings, store_root=args.store_root),
        retry_policy=RetryPolicy(
            transport_retries=1 if args.retry_transport else 0,
            strict_reinvoke_on_shape_mismatch=args.strict_retry,
        ),
    )

    try:
        envelope = asyncio.run(service.run_envelope(payload))
    except ValueError as exc:
        _print(invalid_request_envelope(str(exc)))
        return 2
    finally:
        service.close()

    _print(envelope)
    return 0 if envelope["success"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
