#!/usr/bin/env python3
"""
CLI entrypoint for branchflip.

Usage:
    branchflip targets ret_addr [--mode absolute] [--pc 0x401024 ...]
    branchflip solve --scenario run.yml [--targets ret_addr] [--output out/]
    branchflip report out/

Returns:
    0: success
    3: error
"""

import argparse
import logging
import sys
from pathlib import Path

EXIT_OK = 0
EXIT_ERROR = 3


def _int_auto(text: str) -> int:
    return int(text, 0)


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _handle_targets(args) -> int:
    from .targets import MatchMode, TargetTable

    if not args.file.exists():
        print(f"Error: target list not found: {args.file}", file=sys.stderr)
        return EXIT_ERROR

    table = TargetTable.load(args.file, window=args.window, mode=MatchMode(args.mode))
    print(f"{len(table)} targets ({table.mode.value}, window {table.window:#x})")
    for target in table:
        print(f"  {target.address:#x}  id={target.id}")

    for pc in args.pc or []:
        target = table.match(pc)
        if target is None:
            print(f"pc {pc:#x}: no target")
        else:
            print(f"pc {pc:#x}: {target.address:#x} id={target.id}")
    return EXIT_OK


def _handle_report(args) -> int:
    from .stats import FAILED_FILENAME, STATS_FILENAME, read_failed, read_stats

    stats_path = args.output_dir / STATS_FILENAME
    if not stats_path.exists():
        print(f"Error: no {STATS_FILENAME} in {args.output_dir}", file=sys.stderr)
        return EXIT_ERROR

    rows = read_stats(stats_path)
    if not rows:
        print(f"{STATS_FILENAME} is empty")
        return EXIT_OK

    last = rows[-1]
    print(f"Ticks:       {len(rows)}")
    print(f"CPU time:    {last.elapsed:.3f}s")
    print(f"Attempted:   {last.attempted}")
    print(f"Solved:      {last.solved}")
    print(f"Unsolved:    {last.unsolved}")

    failed_path = args.output_dir / FAILED_FILENAME
    if failed_path.exists():
        failed = read_failed(failed_path)
        print(f"Unreached:   {len(failed)}")
        for target in failed:
            print(f"  {target.address:#x}  id={target.id}")
    return EXIT_OK


def _handle_solve(args) -> int:
    from .config import BranchFlipConfig
    from .errors import BranchFlipError
    from .plugin import BranchFlipPlugin
    from .scenario import Scenario, ScenarioEngine
    from .targets import KeyMode, MatchMode
    import z3

    config = BranchFlipConfig.load(Path.cwd(), args.config)
    if args.targets is not None:
        config.targets.path = str(args.targets)
    if args.mode is not None:
        config.targets.match_mode = MatchMode(args.mode)
    if args.key_mode is not None:
        config.targets.key_mode = KeyMode(args.key_mode)
    if args.output is not None:
        config.output.directory = str(args.output)
    if args.timeout is not None:
        config.stats.timeout_sec = args.timeout
    if args.solver_timeout_ms is not None:
        config.solver.timeout_ms = args.solver_timeout_ms

    if not args.scenario.exists():
        print(f"Error: scenario not found: {args.scenario}", file=sys.stderr)
        return EXIT_ERROR

    try:
        scenario = Scenario.load(args.scenario)
        engine = ScenarioEngine()
        plugin = BranchFlipPlugin(engine, config)
        plugin.initialize()
        reason = engine.run(scenario)
    except (BranchFlipError, ValueError, OSError, z3.Z3Exception) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    counters = plugin.decisions.counters
    print(f"Branches:    {len(scenario.branches)}")
    print(f"Attempted:   {counters.attempted}")
    print(f"Solved:      {counters.solved}")
    print(f"Unsolved:    {counters.unsolved}")
    for identifier in plugin.emitted:
        print(f"  {identifier}")
    if plugin.summary is not None:
        print(f"Targets:     {plugin.summary}")
    if reason:
        print(f"Terminated:  {reason}")
    return EXIT_OK


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="branchflip",
        description="Single-path concolic branch sampling: solve the branch not taken at target addresses",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command")

    # ── targets subcommand ───────────────────────────────────────────────
    targets_parser = subparsers.add_parser("targets", help="Parse a target list and test matches")
    targets_parser.add_argument("file", type=Path, help="Target list ('<hex address> <id>' per line)")
    targets_parser.add_argument(
        "--mode", choices=["one-sided", "absolute"], default="one-sided",
        help="Proximity matching mode (default: one-sided)",
    )
    targets_parser.add_argument(
        "--window", type=_int_auto, default=0x10,
        help="Proximity window in bytes (default: 0x10)",
    )
    targets_parser.add_argument(
        "--pc", type=_int_auto, action="append",
        help="Program counter to match (repeatable)",
    )

    # ── solve subcommand ─────────────────────────────────────────────────
    solve_parser = subparsers.add_parser("solve", help="Replay a recorded branch scenario")
    solve_parser.add_argument("--scenario", type=Path, required=True, help="Scenario YAML file")
    solve_parser.add_argument("--targets", type=Path, default=None, help="Target list (default: ret_addr)")
    solve_parser.add_argument("--output", type=Path, default=None, help="Output directory")
    solve_parser.add_argument("--config", type=Path, default=None, help="Config file (default: .branchflip.yml)")
    solve_parser.add_argument("--mode", choices=["one-sided", "absolute"], default=None)
    solve_parser.add_argument("--key-mode", choices=["address", "target"], default=None)
    solve_parser.add_argument(
        "--timeout", type=float, default=None,
        help="CPU-time budget in seconds (0 disables)",
    )
    solve_parser.add_argument("--solver-timeout-ms", type=int, default=None)

    # ── report subcommand ────────────────────────────────────────────────
    report_parser = subparsers.add_parser("report", help="Summarise Solving.stats and failed.stats")
    report_parser.add_argument("output_dir", type=Path, help="Output directory of a run")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    if args.command == "targets":
        return _handle_targets(args)
    elif args.command == "solve":
        return _handle_solve(args)
    elif args.command == "report":
        return _handle_report(args)
    else:
        parser.print_help()
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
