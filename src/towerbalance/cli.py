from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .analysis.sensitivity import DEFAULT_SEED
from .config import ConfigError, load_config
from .formatting import format_bot_result, format_report, format_simulation
from .live.bot import GameBot
from .live.client import GamePlayClient, GameSessionError, default_game_url
from .models import GameConfig, GameMode, SettingsMode
from .provider import ConfigProviderClient, ProviderError, default_provider_url
from .report import parse_tiers, run_analysis
from .simulation.engine import simulate
from .simulation.strategies import StrategyError, get_strategy, strategy_names
from .suggestions.patches import apply_suggestions, dry_run_lines


logger = logging.getLogger(__name__)


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--url",
        default=None,
        help="Configuration provider URL (default: $TOWERBALANCE_URL or http://localhost:3001).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON/YAML configuration snapshot; used instead of the provider.",
    )
    parser.add_argument(
        "--difficulty",
        choices=[mode.value for mode in SettingsMode],
        default=SettingsMode.NORMAL.value,
        help="Settings profile to analyze.",
    )
    parser.add_argument("--waves", type=int, default=10, help="Number of waves to analyze or play.")
    parser.add_argument("--format", choices=("table", "json"), default="table", help="Output format.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="towerbalance",
        description="Balance analysis for tower-defense configurations: simulation, analysis tiers and suggestions.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Run balance analysis tiers and generate suggestions.")
    _add_source_arguments(analyze)
    analyze.add_argument("--tier", default="all", help="Analysis tier: 1, 2, 3, a comma list, or all.")
    analyze.add_argument("--sim-runs", type=int, default=10, help="Simulation runs per strategy for tier 3.")
    analyze.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Base seed for tier 3 simulation runs.")
    analyze.add_argument("--workers", type=int, default=1, help="Worker processes for tier 3 simulations.")
    analyze.add_argument("--output", default=None, help="Also write the JSON report to this file.")
    analyze.add_argument("--apply", action="store_true", help="Send suggested edits to the configuration provider.")
    analyze.add_argument("--dry-run", action="store_true", help="Print the edits that --apply would send.")

    sim = subparsers.add_parser("simulate", help="Simulate one run with a placement strategy.")
    _add_source_arguments(sim)
    sim.add_argument(
        "--strategy",
        default="balanced",
        help=f"Strategy to use ({', '.join(strategy_names())}).",
    )
    sim.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed for the random strategy.")

    play = subparsers.add_parser("play", help="Play a live game session with a placement strategy.")
    _add_source_arguments(play)
    play.add_argument("--strategy", default="balanced", help=f"Strategy to use ({', '.join(strategy_names())}).")
    play.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed for the random strategy.")
    play.add_argument(
        "--game-mode",
        choices=[mode.value for mode in GameMode],
        default=GameMode.TEN_WAVES.value,
        help="Game mode to start.",
    )
    play.add_argument(
        "--game-url",
        default=None,
        help="Game server URL (default: $TOWERBALANCE_GAME_URL or http://localhost:3001).",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(args: argparse.Namespace) -> GameConfig:
    if args.config:
        return load_config(Path(args.config), difficulty=args.difficulty)
    with ConfigProviderClient(args.url) as client:
        if not client.health_check():
            raise ProviderError(f"Backend unreachable at {client.base_url}. Is the server running?")
        return client.fetch_config(args.difficulty)


def _print_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def _run_analyze(parser: argparse.ArgumentParser, args: argparse.Namespace, config: GameConfig) -> int:
    if args.apply and args.config:
        parser.error("--apply needs the configuration provider; drop --config or use --dry-run.")
    try:
        tiers = parse_tiers(args.tier)
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    report = run_analysis(
        config,
        tiers=tiers,
        num_waves=args.waves,
        sim_runs=args.sim_runs,
        seed=args.seed,
        workers=args.workers,
    )

    if args.output:
        Path(args.output).write_text(
            json.dumps(report.to_dict(include_runs=True), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        logger.info("wrote report to %s", args.output)

    if args.format == "json":
        _print_json(report.to_dict())
    else:
        print(format_report(report, config))

    if args.dry_run:
        print()
        print("Dry run: API calls that would be made")
        for line in dry_run_lines(report.suggestions):
            print(f"  {line}")
    elif args.apply:
        if not report.suggestions:
            print("No suggestions to apply.")
            return 0
        with ConfigProviderClient(args.url) as client:
            outcome = apply_suggestions(client, report.suggestions)
        for line in outcome.summary_lines():
            print(line)
        return 1 if outcome.failed else 0
    return 0


def _run_simulate(args: argparse.Namespace, config: GameConfig) -> int:
    strategy = get_strategy(args.strategy, seed=args.seed)
    result = simulate(config, strategy, args.waves)
    if args.format == "json":
        _print_json(result.to_dict())
    else:
        print(format_simulation(result, config, per_wave=args.verbose))
    return 0


def _run_play(args: argparse.Namespace, config: GameConfig) -> int:
    strategy = get_strategy(args.strategy, seed=args.seed)
    with GamePlayClient(args.game_url or default_game_url()) as client:
        result = GameBot(client, config, strategy, args.waves, game_mode=args.game_mode).play()
    if args.format == "json":
        _print_json(result.to_dict())
    else:
        print(format_bot_result(result))
    return 0 if result.won else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.waves <= 0:
        parser.error("--waves must be positive.")
    if getattr(args, "sim_runs", 1) < 0:
        parser.error("--sim-runs must not be negative.")

    try:
        config = _load(args)
    except (ConfigError, ProviderError) as exc:
        parser.error(str(exc))
        return 2
    logger.debug(
        "loaded %d tower(s), %d enemy type(s), %d wave(s) for %s from %s",
        len(config.towers),
        len(config.enemies),
        len(config.waves),
        config.settings.mode,
        args.config or args.url or default_provider_url(),
    )

    try:
        if args.command == "analyze":
            return _run_analyze(parser, args, config)
        if args.command == "simulate":
            return _run_simulate(args, config)
        return _run_play(args, config)
    except (StrategyError, GameSessionError, ProviderError) as exc:
        parser.error(str(exc))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
