# protoview/cli/main.py
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from protoview.classification.classifier import classify
from protoview.core.context import ApplicationContext
from protoview.core.logging_config import LoggingManager
from protoview.db.migration_manager import MigrationManager
from protoview.error_handlers import handle_exceptions
from protoview.models.interaction import Scheme
from protoview.reconciliation.cleanup import CleanupGroup, bulk_cleanup
from protoview.reconciliation.reconciler import recompute_tiers
from protoview.services.report import SCORE_FIELDS, summary_frame, tier_distribution

PACKAGE_MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                                      'db', 'migrations')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='protoview',
                                     description='ProtoView interaction confidence and deduplication tools')

    # Global options
    parser.add_argument('--config', type=str, help='Path to configuration file')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (can be used multiple times)')
    parser.add_argument('--log-file', type=str,
                        help='Log to file in addition to stderr')
    parser.add_argument('--log-dir', type=str,
                        help='Directory for log files')
    parser.add_argument('--json', action='store_true',
                        help='Output results as JSON')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    migrate_parser = subparsers.add_parser('migrate', help='Apply database migrations')
    migrate_parser.add_argument('--migrations-dir', type=str, default=None,
                                help='Directory containing migration files')

    cleanup_parser = subparsers.add_parser('cleanup',
                                           help='Remove duplicate records (dry run unless --execute)')
    cleanup_parser.add_argument('--execute', action='store_true',
                                help='Delete duplicates instead of only reporting them')
    cleanup_parser.add_argument('--show', type=int, default=10,
                                help='Number of duplicate groups to list')

    recompute_parser = subparsers.add_parser('recompute',
                                             help='Recompute stored confidence tiers (dry run unless --execute)')
    recompute_parser.add_argument('--execute', action='store_true',
                                  help='Write recomputed tiers and delete Very Low ipSAE records')

    report_parser = subparsers.add_parser('report', help='Tier distribution and score statistics')
    report_parser.add_argument('--csv', type=str, metavar='PATH',
                               help='Write the tier distribution to a CSV file')
    report_parser.add_argument('--field', action='append', choices=SCORE_FIELDS,
                               help='Score field to summarise (repeatable; default all)')

    classify_parser = subparsers.add_parser('classify', help='Classify metrics without touching the database')
    classify_parser.add_argument('--scheme', choices=[s.value for s in Scheme], default=Scheme.B.value,
                                 help='A: ipSAE thresholds, B: interface quality')
    classify_parser.add_argument('--iptm', type=float, help='Interface pTM')
    classify_parser.add_argument('--contacts', type=int, help='Interface contacts with PAE < 3')
    classify_parser.add_argument('--plddt', type=float, help='Mean interface pLDDT')
    classify_parser.add_argument('--ipsae', type=float, help='ipSAE score')

    return parser


def _emit(args: argparse.Namespace, payload: Dict[str, Any], lines: List[str]) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        for line in lines:
            print(line)


def _migrations_dir(args: argparse.Namespace, context: ApplicationContext) -> str:
    if args.migrations_dir:
        return args.migrations_dir
    configured = context.config.get('storage.migrations_dir')
    if configured and os.path.isdir(configured):
        return configured
    return PACKAGE_MIGRATIONS_DIR


def run_migrate(args: argparse.Namespace, context: ApplicationContext, logger: logging.Logger) -> int:
    migrations_dir = _migrations_dir(args, context)
    logger.info(f"Running database migrations from {migrations_dir}")
    manager = MigrationManager(context.config.get_db_config(), migrations_dir,
                               schema=context.config.get('storage.schema', 'protoview'))
    applied = manager.apply_migrations()
    _emit(args, {'applied': applied},
          [f"Applied {len(applied)} migrations"] + [f"  {name}" for name in applied])
    return 0


def run_cleanup(args: argparse.Namespace, context: ApplicationContext, logger: logging.Logger) -> int:
    repository = context.interactions
    execute = args.execute or not context.config.get('cleanup.dry_run', True)

    def _apply(group: CleanupGroup) -> None:
        repository.apply_cleanup_group(group.keep, group.remove)

    batch_size = context.config.get('storage.scan_batch_size', 2000)
    # Materialised so the scan cursor is closed before any group transaction starts
    records = list(repository.iter_all(batch_size=batch_size))
    logger.info(f"Scanning {len(records)} records for duplicates")
    report = bulk_cleanup(records, _apply if execute else None)

    lines = [
        f"{'Dry run: ' if report.dry_run else ''}{report.groups_processed} duplicate groups, "
        f"{report.duplicates_removed} duplicates {'would be ' if report.dry_run else ''}removed"
    ]
    for group in report.groups[:args.show]:
        lines.append(f"  {group.keep.subject_key} iptm={group.keep.iptm}: keep {group.keep.id} "
                     f"({group.keep.analysis_version}), remove {group.remove_ids}")
    if len(report.groups) > args.show:
        lines.append(f"  ... and {len(report.groups) - args.show} more")
    for failure in report.failures:
        lines.append(f"  FAILED {failure.identity_key[0]}: {failure.error_type}: {failure.error}")
    if report.dry_run and report.groups:
        lines.append("Run with --execute to delete duplicates")

    _emit(args, report.to_dict(), lines)
    return 0 if report.success else 1


def run_recompute(args: argparse.Namespace, context: ApplicationContext, logger: logging.Logger) -> int:
    repository = context.interactions
    batch_size = context.config.get('storage.scan_batch_size', 2000)
    report = recompute_tiers(repository.iter_all(batch_size=batch_size))

    updated = deleted = 0
    if args.execute:
        updated = repository.update_tiers(report.changed)
        deleted = repository.delete_ids([r.id for r in report.very_low])
        logger.info(f"Recompute wrote {updated} tier changes and deleted {deleted} Very Low records")

    verb = "" if args.execute else "would be "
    _emit(args, {
        'examined': report.examined,
        'changed': len(report.changed),
        'very_low': len(report.very_low),
        'updated': updated,
        'deleted': deleted,
        'dry_run': not args.execute,
    }, [
        f"Examined {report.examined} records",
        f"  {len(report.changed)} tier changes {verb}written",
        f"  {len(report.very_low)} Very Low ipSAE records {verb}deleted",
    ])
    return 0


def run_report(args: argparse.Namespace, context: ApplicationContext, logger: logging.Logger) -> int:
    batch_size = context.config.get('storage.scan_batch_size', 2000)
    records = list(context.interactions.iter_all(batch_size=batch_size))
    distribution = tier_distribution(records)
    summary = summary_frame(records, args.field or SCORE_FIELDS)

    if args.csv:
        distribution.to_csv(args.csv, index=False)
        logger.info(f"Tier distribution written to {args.csv}")

    _emit(args, {
        'records': len(records),
        'distribution': distribution.to_dict(orient='records'),
        'scores': summary.reset_index().to_dict(orient='records'),
    }, [
        f"{len(records)} records",
        "",
        distribution.to_string(index=False),
        "",
        summary.to_string(float_format=lambda v: f"{v:.4f}"),
    ])
    return 0


def run_classify(args: argparse.Namespace) -> int:
    metrics = {
        'iptm': args.iptm,
        'contacts_pae_lt_3': args.contacts,
        'interface_plddt': args.plddt,
        'ipsae': args.ipsae,
    }
    tier = classify(args.scheme, metrics)
    label = tier.value if tier is not None else None
    _emit(args, {'scheme': args.scheme, 'tier': label, 'metrics': metrics},
          [label if label is not None else "No ipSAE score"])
    return 0


@handle_exceptions(exit_on_error=False)
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # 0=INFO, 2+=DEBUG
    logger = LoggingManager.configure(
        verbose=args.verbose >= 2,
        log_file=args.log_file,
        log_dir=args.log_dir,
        component="cli",
    )

    if args.command == 'classify':
        return run_classify(args)

    context = ApplicationContext(args.config)
    LoggingManager.configure(
        verbose=args.verbose >= 2,
        log_file=args.log_file,
        log_dir=args.log_dir,
        component="cli",
        config=context.config.config,
    )

    commands = {
        'migrate': run_migrate,
        'cleanup': run_cleanup,
        'recompute': run_recompute,
        'report': run_report,
    }
    return commands[args.command](args, context, logger)


if __name__ == '__main__':
    sys.exit(main())
