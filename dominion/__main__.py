"""Entry point: ``python -m dominion``.

Supports two modes:
  - ``python -m dominion``            → Launch the FastAPI scheduler service
  - ``python -m dominion cli``        → Headless run that writes a replay
"""

from __future__ import annotations

import argparse
import logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turn-based civilization action scheduler")
    sub = parser.add_subparsers(dest="command")

    # --- Server mode (default) ---
    srv = sub.add_parser("serve", help="Start the FastAPI service (default)")
    srv.add_argument("--host", type=str, default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    _add_simulation_args(srv)

    # --- Headless CLI mode ---
    cli = sub.add_parser("cli", help="Run a headless simulation")
    _add_simulation_args(cli)
    cli.add_argument("--turns", type=int, default=200)
    cli.add_argument("--replay", type=str, default="replay.json")
    cli.add_argument("--save", type=str, default=None, help="Write scheduler state here at the end")
    cli.add_argument("--load", type=str, default=None, help="Restore scheduler state before running")

    return parser


def _add_simulation_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--civs", type=int, default=4)
    parser.add_argument("--workers", type=int, default=4)
    parser.add_argument("--queue-size", type=int, default=20)
    parser.add_argument("--actions-per-turn", type=int, default=3)
    parser.add_argument("--max-retries", type=int, default=2)
    parser.add_argument(
        "--layers", type=str, default="utility,goap,htn",
        help="Comma-separated decision layers, in call order",
    )
    parser.add_argument("--lenient", action="store_true", help="Normalise NaN/inf priorities instead of raising")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING"])


def _config_from_args(args: argparse.Namespace, **extra):
    from dominion.config import SimulationConfig

    return SimulationConfig(
        world_seed=args.seed,
        num_civs=args.civs,
        num_workers=args.workers,
        max_queue_size=args.queue_size,
        actions_per_turn=args.actions_per_turn,
        max_retries=args.max_retries,
        decision_layers=tuple(n.strip() for n in args.layers.split(",") if n.strip()),
        strict_invariants=not args.lenient,
        log_level=args.log_level,
        **extra,
    )


def _run_server(args: argparse.Namespace) -> None:
    import uvicorn

    from dominion.api.app import create_app

    config = _config_from_args(args)
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


def _run_cli(args: argparse.Namespace) -> None:
    from dominion.engine.world_loop import build_world_loop
    from dominion.utils import persistence
    from dominion.utils.logging import setup_logging
    from dominion.utils.replay import ReplayRecorder

    config = _config_from_args(args, max_turns=args.turns, replay_file=args.replay)
    setup_logging(config.log_level)

    recorder = ReplayRecorder(config.replay_file, config.world_seed)
    loop = build_world_loop(config, recorder=recorder)

    if args.load:
        save = persistence.load_from_file(loop.processor, args.load)
        loop.world.turn = save.turn

    try:
        loop.run()
    finally:
        loop.shutdown()

    if args.save:
        persistence.save_to_file(loop.processor, args.save)
    logger.info("Done. Replay written to %s", config.replay_file)


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    # Default to serve mode if no subcommand given
    if args.command is None:
        args = parser.parse_args(["serve"])
    if args.command == "serve":
        _run_server(args)
    elif args.command == "cli":
        _run_cli(args)


if __name__ == "__main__":
    main()
