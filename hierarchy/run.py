#!/usr/bin/env python3
"""
Command-line interface for the orbital hierarchy engine.

Loads a system from YAML, applies destruction events, lets the engine
repair the parent hierarchy and reports what moved:
- Configuration loading and validation
- Destruction batches from the file and from --destroy
- Optional maintenance pass (competitive stars + escape sweep)
- Change log and hierarchy tree on stdout
- CSV and JSON output

Usage:
    python -m hierarchy.run system.yaml
    python -m hierarchy.run system.yaml --destroy jupiter --maintain
    python -m hierarchy.run system.yaml --validate-only
    python -m hierarchy.run new_system.yaml --create-example

Example:
    # Destroy the main star of a binary and see who takes over
    python -m hierarchy.run binary.yaml --destroy sun --verbose
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from hierarchy.bodies import BodyStatus
from hierarchy.diagnostics import format_hierarchy, summarize_hierarchy
from hierarchy.io_cfg import (
    create_example_config,
    load_config,
    save_changes_csv,
    save_report_json,
    validate_config,
)
from hierarchy.logging_config import setup_logging
from hierarchy.reassign import HierarchyEngine, ReassignmentReport
from hierarchy.registry import BodyRegistry

logger = logging.getLogger(__name__)


# ============================================================================
# Event runner
# ============================================================================

def apply_status(registry: BodyRegistry, body_ids: List[str], status: BodyStatus) -> None:
    """Flip the lifecycle status of the given bodies (monotonic).

    Bodies already at or past `status` are left as they are.
    """
    for body_id in body_ids:
        body = registry[body_id]
        if body.status.rank >= status.rank:
            logger.debug("Body '%s' is already %s", body_id, body.status.value)
            continue
        if status is BodyStatus.ANNIHILATED:
            body.mark_annihilated()
        else:
            body.mark_destroyed()


def run_events(
    config: Dict[str, Any],
    extra_destroy: Optional[List[str]] = None,
    maintain: bool = False,
) -> Dict[str, ReassignmentReport]:
    """
    Apply every destruction batch and return one report per step.

    Parameters
    ----------
    config : dict
        Configuration from load_config(). Its registry is mutated in place.
    extra_destroy : list of str, optional
        Ids destroyed in one extra batch after the file's events.
    maintain : bool
        Run a final maintenance pass.

    Returns
    -------
    dict
        Ordered `label -> ReassignmentReport`. Labels are 'event_<i>',
        'event_<i>_maintenance', 'cli' and 'maintenance'.
    """
    registry = config['registry']
    engine = HierarchyEngine(config['settings'])
    reports: Dict[str, ReassignmentReport] = {}

    batches = [(f"event_{i}", event) for i, event in enumerate(config['events'])]
    if extra_destroy:
        batches.append(('cli', {
            'destroy': list(extra_destroy),
            'status': BodyStatus.DESTROYED,
            'maintain': False,
        }))

    for label, event in batches:
        apply_status(registry, event['destroy'], event['status'])
        report = engine.handle_destruction(registry, event['destroy'])
        reports[label] = report
        if report.catastrophic:
            logger.error("Stopping after '%s': no star left to anchor the system", label)
            return reports
        if event['maintain']:
            reports[f"{label}_maintenance"] = engine.maintain(registry)

    if maintain:
        reports['maintenance'] = engine.maintain(registry)

    return reports


# ============================================================================
# Output
# ============================================================================

def print_report(label: str, report: ReassignmentReport) -> None:
    """Print one report's change log."""
    print(f"[{label}] {len(report)} parent change(s)")
    for change in report.changes:
        old = change.old_parent_id or '-'
        new = change.new_parent_id or '-'
        print(f"    {change.body_id:<20s} {old:>15s} -> {new}")
    if report.new_main_star_id:
        print(f"    New main star: {report.new_main_star_id}")
    if report.drifting_ids:
        print(f"    ⚠️  Drifting: {', '.join(report.drifting_ids)}")
    if report.catastrophic:
        print("    ❌ All stars lost, hierarchy left unrepaired")


def print_summary(summary: Dict[str, Any], verbose: bool = False) -> None:
    """
    Print human-readable hierarchy summary.

    Parameters
    ----------
    summary : dict
        Output of summarize_hierarchy()
    verbose : bool
        Also print the per-kind and per-status counts
    """
    print()
    print("=" * 80)
    print("HIERARCHY SUMMARY")
    print("=" * 80)
    print(f"  Bodies:             {summary['n_bodies']} ({summary['n_active']} active)")
    print(f"  Main star:          {summary['main_star'] or 'none'}")
    print(f"  Roots:              {', '.join(summary['roots']) or 'none'}")
    print(f"  Orphans:            {', '.join(summary['orphans']) or 'none'}")
    print(f"  Max depth:          {summary['max_depth']}")
    if verbose:
        for kind, count in sorted(summary['by_kind'].items()):
            print(f"  Active {kind + ':':<13s} {count}")
        for status, count in sorted(summary['by_status'].items()):
            print(f"  Status {status + ':':<13s} {count}")
    print()


def save_outputs(
    reports: Dict[str, ReassignmentReport],
    registry: BodyRegistry,
    output_dir: Path,
    outputs: Dict[str, Any],
) -> None:
    """Write changes.csv and report.json according to the outputs section."""
    output_dir.mkdir(parents=True, exist_ok=True)
    if outputs.get('write_csv', True):
        changes = [c for report in reports.values() for c in report.changes]
        save_changes_csv(output_dir / 'changes.csv', changes)
    if outputs.get('write_json', True):
        save_report_json(output_dir / 'report.json', reports, registry)


# ============================================================================
# CLI
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='hierarchy.run',
        description=(
            'Orbital hierarchy engine: re-derive which body orbits which '
            'after destructions and gravitational competition.'
        ),
        epilog=(
            'Examples:\n'
            '  python -m hierarchy.run system.yaml\n'
            '  python -m hierarchy.run system.yaml --destroy jupiter --maintain\n'
            '  python -m hierarchy.run system.yaml --validate-only\n'
            '  python -m hierarchy.run new.yaml --create-example\n'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        'config',
        type=str,
        help='Path to YAML configuration file',
    )

    parser.add_argument(
        '--destroy',
        nargs='+',
        metavar='ID',
        default=[],
        help='Destroy these bodies in one extra batch after the file events',
    )

    parser.add_argument(
        '--maintain',
        action='store_true',
        help='Run a maintenance pass (competitive stars + escape sweep) at the end',
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default=None,
        help='Output directory for results (default: outputs.output_dir or output/)',
    )

    parser.add_argument(
        '--validate-only',
        action='store_true',
        help='Validate configuration and exit',
    )

    parser.add_argument(
        '--create-example',
        action='store_true',
        help='Write an example configuration to CONFIG and exit',
    )

    parser.add_argument(
        '--log-dir',
        type=str,
        default=None,
        help='Also write rotating log files to this directory',
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output (debug logging, tree before events)',
    )

    return parser


def main(argv=None):
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, log_dir=args.log_dir)

    if args.create_example:
        create_example_config(args.config)
        print(f"✓ Example configuration written to: {args.config}")
        return 0

    # 1) Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"ERROR: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    # 2) Validate configuration
    is_valid, warnings_list = validate_config(config)

    unknown = [body_id for body_id in args.destroy if body_id not in config['registry']]
    if unknown:
        is_valid = False
        warnings_list.append(f"--destroy names unknown bodies: {', '.join(unknown)}")

    if warnings_list:
        print("⚠️  Configuration warnings/errors:")
        for w in warnings_list:
            print(f"    - {w}")
        print()

    if not is_valid:
        print("❌ Configuration is INVALID. Please fix errors above.", file=sys.stderr)
        return 1

    if args.validate_only:
        print("✓ Configuration validated successfully. Exiting (--validate-only mode).")
        return 0

    registry = config['registry']
    if args.verbose:
        print(config['settings'])
        print()
        print("Initial hierarchy:")
        print(format_hierarchy(registry))
        print()

    # 3) Apply events
    try:
        reports = run_events(config, extra_destroy=args.destroy, maintain=args.maintain)
    except Exception as e:
        print(f"\nERROR: Reassignment failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    for label, report in reports.items():
        print_report(label, report)

    # 4) Print summary
    print_summary(summarize_hierarchy(registry), verbose=args.verbose)
    print(format_hierarchy(registry))
    print()

    # 5) Save outputs
    output_dir = Path(args.output_dir or config['outputs']['output_dir'])
    try:
        save_outputs(reports, registry, output_dir, config['outputs'])
    except OSError as e:
        print(f"ERROR: Failed to save outputs: {e}", file=sys.stderr)
        return 1

    if any(report.catastrophic for report in reports.values()):
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
