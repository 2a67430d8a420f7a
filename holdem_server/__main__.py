import argparse
import asyncio
import logging

from holdem.evaluator import BestHandOracle, TreysOracle
from holdem.models import TableConfig

from .server import TableServer
from .store import JsonFileChipStore, MemoryChipStore

ORACLES = {"builtin": BestHandOracle, "treys": TreysOracle}


def main() -> None:
    defaults = TableConfig()
    parser = argparse.ArgumentParser(description="Texas Hold'em table server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--max-seats", type=int, default=defaults.max_seats)
    parser.add_argument("--starting-stack", type=int, default=defaults.starting_stack)
    parser.add_argument("--sb", type=int, default=defaults.sb)
    parser.add_argument("--bb", type=int, default=defaults.bb)
    parser.add_argument("--rebuy", type=int, default=defaults.rebuy_amount, help="Chips granted by a rebuy")
    parser.add_argument(
        "--showdown-timeout",
        type=float,
        default=defaults.showdown_timeout,
        help="Seconds to wait for show/muck decisions (also the fold-out reset delay)",
    )
    parser.add_argument("--review-timeout", type=float, default=defaults.review_timeout)
    parser.add_argument(
        "--disconnect-grace",
        type=float,
        default=defaults.disconnect_grace,
        help="Seconds a disconnected player keeps their seat",
    )
    parser.add_argument(
        "--chip-store",
        default=None,
        help="JSON file holding chip balances (in-memory when omitted)",
    )
    parser.add_argument(
        "--oracle",
        choices=sorted(ORACLES),
        default="treys",
        help="Hand evaluator used at showdown",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    try:
        config = TableConfig(
            max_seats=args.max_seats,
            starting_stack=args.starting_stack,
            sb=args.sb,
            bb=args.bb,
            rebuy_amount=args.rebuy,
            showdown_timeout=args.showdown_timeout,
            review_timeout=args.review_timeout,
            disconnect_grace=args.disconnect_grace,
        )
    except ValueError as exc:
        parser.error(str(exc))
    store = JsonFileChipStore(args.chip_store) if args.chip_store else MemoryChipStore()

    server = TableServer(config, store=store, oracle=ORACLES[args.oracle]())
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
