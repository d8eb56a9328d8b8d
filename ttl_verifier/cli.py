"""
CLI interface for the TTL update verifier.

Supports two modes:
  run      - Verify events against a host TTL backend, write diagnostics.
  generate - Generate synthetic update events.
"""
from __future__ import annotations

import argparse
import logging
import sys

from ttl_verifier.models import DEFAULT_REPORT_EVERY, DEFAULT_TTL_MS

EXIT_ERROR = 1
EXIT_VERIFICATION_FAILED = 2


def _setup_logging(verbose: bool = False) -> None:
    """Configure structured logging."""
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)-7s] %(name)s - %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="ttl-verifier",
        description="Verify a TTL state store under random updates",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug-level logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # --- run ---
    run_p = sub.add_parser("run", help="Verify events against a TTL backend")
    run_p.add_argument("--events", required=True, help="Path to events.jsonl")
    run_p.add_argument(
        "--diagnostics", required=True, help="Path to diagnostics.jsonl (failures only)"
    )
    run_p.add_argument(
        "--backend", required=True,
        help="Host state backend as 'module:attr' (instance or factory)",
    )
    run_p.add_argument(
        "--checkpoint", default=None,
        help="History checkpoint file, restored before and saved after the run",
    )
    run_p.add_argument(
        "--ttl-ms", type=int, default=DEFAULT_TTL_MS,
        help=f"State TTL in milliseconds (default {DEFAULT_TTL_MS})",
    )
    run_p.add_argument(
        "--report-every", type=int, default=DEFAULT_REPORT_EVERY,
        help=f"Updates between stats log lines (default {DEFAULT_REPORT_EVERY})",
    )

    # --- generate ---
    gen_p = sub.add_parser("generate", help="Generate synthetic update events")
    gen_p.add_argument("--output", required=True, help="Path to output events.jsonl")
    gen_p.add_argument(
        "--count", type=int, default=1000, help="Number of events (default 1000)"
    )
    gen_p.add_argument(
        "--seed", type=int, default=42, help="Random seed for reproducibility"
    )
    gen_p.add_argument(
        "--keys", type=int, default=10, help="Number of partition keys (default 10)"
    )

    args = parser.parse_args(argv)
    _setup_logging(verbose=args.verbose)

    logger = logging.getLogger("ttl_verifier.cli")

    if args.command == "run":
        from ttl_verifier.engine import load_backend, run_verification
        from ttl_verifier.models import VerifierConfig

        try:
            config = VerifierConfig(ttl_ms=args.ttl_ms, report_every=args.report_every)
            backend = load_backend(args.backend)
            failures = run_verification(
                args.events, args.diagnostics, backend, config,
                checkpoint_path=args.checkpoint,
            )
        except Exception as exc:
            logger.exception("Run failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(EXIT_ERROR)
        if failures:
            print(f"VERIFICATION FAILED: {failures} failure(s) -> {args.diagnostics}",
                  file=sys.stderr)
            sys.exit(EXIT_VERIFICATION_FAILED)
        print("RUN OK: no verification failures")

    elif args.command == "generate":
        from ttl_verifier.generate_events import generate_events

        try:
            generate_events(args.output, args.count, args.seed, keys=args.keys)
            print(f"Generated {args.count} events -> {args.output}")
        except Exception as exc:
            logger.exception("Generation failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
