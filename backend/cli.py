import argparse
import logging
import sys

from config import Settings, configure_logging
from provably_fair import (ChainIntegrityError, MalformedInput, generate_chain,
                           load_chain, save_chain, verify)

logger = logging.getLogger("hashdice.cli")


def make_parser(settings: Settings):
    p = argparse.ArgumentParser(
        description="Hash-chain dice: generate and check seed chains, verify revealed bets"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_gen = sub.add_parser("generate", help="Generate a new seed chain and print its public anchor")
    p_gen.add_argument("--size", type=int, default=settings.chain_size,
                       help=f"Number of playable seeds (default {settings.chain_size})")
    p_gen.add_argument("--out", default=settings.chain_file, help="Destination JSON file")
    p_gen.add_argument("--force", action="store_true",
                       help="Overwrite an existing chain file (invalidates its published anchor)")

    p_chk = sub.add_parser("check", help="Validate a stored chain")
    p_chk.add_argument("--chain", default=settings.chain_file)

    p_ver = sub.add_parser("verify", help="Verify a revealed bet against the previous anchor")
    p_ver.add_argument("--anchor", required=True, help="Anchor shown before the bet")
    p_ver.add_argument("--seed", required=True, help="Revealed server seed")
    p_ver.add_argument("--client", required=True, help="Client seed used")
    p_ver.add_argument("--nonce", type=int, required=True, help="Sequence number of the bet")
    p_ver.add_argument("--roll", required=True, help="Reported roll")

    return p


def main(argv=None, settings: Settings = None):
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    parser = make_parser(settings)
    args = parser.parse_args(argv)

    if args.cmd == "generate":
        if args.size < 1:
            parser.error("--size must be >= 1")
        chain = generate_chain(args.size)
        try:
            save_chain(chain, args.out, force=args.force)
        except FileExistsError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(f"Chain of {args.size} seeds written to {args.out}")
        print(f"PUBLIC ANCHOR (publish this): {chain[0]}")
        return 0

    if args.cmd == "check":
        try:
            chain = load_chain(args.chain)
        except (OSError, ChainIntegrityError) as e:
            print(f"invalid chain: {e}", file=sys.stderr)
            return 1
        print(f"OK: {len(chain) - 1} seeds, anchor {chain[0]}")
        return 0

    if args.cmd == "verify":
        try:
            result = verify(args.anchor, args.seed, args.client, args.nonce, args.roll)
        except MalformedInput as e:
            print(f"malformed input: {e}", file=sys.stderr)
            return 2
        print(f"math:  {'OK' if result.math_valid else 'FAILED'} (calculated {result.calculated_roll:.2f})")
        print(f"chain: {'OK' if result.chain_valid else 'FAILED'} (sha256 {result.chain_hash})")
        return 0 if result.fair else 1


if __name__ == "__main__":
    sys.exit(main())
