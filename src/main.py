#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provisions-Kaskade - Haupteinstiegspunkt (Kommandozeile).

Befehle:
    cascade  --data FILE --entry ID                 Kaskade eines Umsatzes anzeigen
    report   --data FILE --employee ID [--month JJJJ-MM]
                                                    Provisionsabrechnung eines Mitarbeiters
    summary  --data FILE                            Provisions-Summen je Teilnehmer
    migrate  --data FILE --output FILE [--dry-run]  Provisions-Snapshots nachtragen

--data akzeptiert .json und .xlsx (siehe services/record_loader.py).
"""

import argparse
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

# Pfad zum src-Verzeichnis
_src_dir = os.path.dirname(os.path.abspath(__file__))
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

from config.provision_rules import CategoryRateMapping, get_category_display_name
from domain.provision.billing import ProvisionSummary, ReportPeriod
from domain.provision.errors import ProvisionError
from services.billing_aggregator import BillingAggregator
from services.billing_report import BillingReportService
from services.provision_cascade import ProvisionCascadeCalculator
from services.provision_snapshot import SnapshotResolver
from services.record_loader import load_data, save_json

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_DIR = os.path.join(_src_dir, "..", "logs")
LOG_FILE_NAME = "provision.log"

logger = logging.getLogger(__name__)

_logging_ready = False


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> None:
    """Konfiguriert Logging mit Console + File Output."""
    global _logging_ready
    if _logging_ready:
        return
    log_dir = log_dir or DEFAULT_LOG_DIR
    log_file = os.path.join(log_dir, LOG_FILE_NAME)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.WARNING)
    root_logger.addHandler(console_handler)

    # File Handler mit Rotation (5 MB, 3 Backups)
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.info(f"File-Logging aktiviert: {log_file}")
    except (OSError, PermissionError) as e:
        root_logger.warning(f"File-Logging nicht moeglich, nur Console: {e}")
    _logging_ready = True


def format_eur(value: float) -> str:
    """1234.5 -> '1.234,50 EUR'"""
    text = f"{value:,.2f}".replace(',', 'X').replace('.', ',').replace('X', '.')
    return f"{text} EUR"


def _print_summary(title: str, summary: ProvisionSummary) -> None:
    print(f"  {title:<22} {summary.entry_count:>4} Pos.  "
          f"Umsatz {format_eur(summary.total_net):>16}  Provision {format_eur(summary.total_provision):>14}")


# =============================================================================
# Befehle
# =============================================================================

def cmd_cascade(args) -> int:
    dataset = load_data(args.data)
    entry = dataset.find_entry(args.entry)
    if entry is None:
        print(f"Umsatz '{args.entry}' nicht gefunden", file=sys.stderr)
        return 1

    cascade = ProvisionCascadeCalculator().compute_cascade(entry, dataset.tree)
    if args.json:
        print(json.dumps(cascade.to_dict(), ensure_ascii=False, indent=2))
        return 0

    print(f"Kaskade fuer Umsatz {entry.id} "
          f"({get_category_display_name(entry.category_type)}, {format_eur(entry.provision_amount)})")
    print("-" * 64)
    for participant in cascade.for_display():
        print(f"  {participant.role.display_name:<15} {participant.name:<22} "
              f"{participant.rate_percentage:>7.2f} %  {format_eur(participant.amount):>16}")
    print("-" * 64)
    print(f"  {'Summe':<38} {cascade.total_rate:>7.2f} %  {format_eur(cascade.total_amount):>16}")
    if cascade.is_overallocated:
        print(f"  WARNUNG: Anteile uebersteigen den Umsatz um {format_eur(cascade.overallocation)}")
    return 0


def cmd_report(args) -> int:
    dataset = load_data(args.data)
    period = ReportPeriod.parse_month(args.month) if args.month else None
    report = BillingReportService().generate_report(
        args.employee, dataset.entries, dataset.tree, period=period,
    )
    if args.json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return 0

    print(f"Provisionsabrechnung {report.employee.name}"
          + (f" - {report.period.display_name}" if report.period else ""))
    print("=" * 80)
    _print_summary("Eigene Umsaetze", report.own_summary)
    _print_summary("Team-Umsaetze", report.hierarchy_summary)
    _print_summary("Tippgeber-Umsaetze", report.tip_provider_summary)
    print("-" * 80)
    total = report.total_summary
    _print_summary("Gesamt", total)
    if total.total_provision_vat:
        print(f"  davon USt {format_eur(total.total_provision_vat)}, "
              f"netto {format_eur(total.total_provision_net)}")
    if report.excluded_entry_count:
        print(f"  {report.excluded_entry_count} abgelehnte/stornierte Eintraege nicht beruecksichtigt")
    if report.direct_payment_entry_count:
        print(f"  {report.direct_payment_entry_count} Eintraege mit Direktauszahlung nicht abgerechnet")
    if report.has_failures:
        print(f"  {report.failure_notice()}")
    return 0


def cmd_summary(args) -> int:
    dataset = load_data(args.data)
    result = BillingAggregator().summarize_by_employee(dataset.entries, dataset.tree)
    for node_id, summary in sorted(result.by_employee.items()):
        node = dataset.tree.find_node(node_id)
        _print_summary(node.name if node else node_id, summary)
    print("-" * 80)
    _print_summary("Gesamt", result.summary)
    if result.excluded_entry_count:
        print(f"  {result.excluded_entry_count} abgelehnte/stornierte Eintraege nicht beruecksichtigt")
    if result.has_failures:
        print(f"  {result.failure_notice()}")
    return 0


def cmd_migrate(args) -> int:
    if not args.output and not args.dry_run:
        print("--output ist erforderlich (oder --dry-run)", file=sys.stderr)
        return 2
    dataset = load_data(args.data)
    mapping = CategoryRateMapping.legacy() if args.legacy_mapping else CategoryRateMapping()
    result = SnapshotResolver(mapping).backfill(dataset.entries, dataset.tree, dry_run=args.dry_run)
    print(result.summary())
    for error in result.errors:
        print(f"  {error['entryId']}: {error['message']}")
    if not args.dry_run:
        save_json(dataset, args.output)
        print(f"Gespeichert: {args.output}")
    return 1 if result.has_errors else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='provision-cascade',
        description="Provisions-Kaskade: Aufteilung und Abrechnung von Provisionen",
    )
    parser.add_argument('--log-dir', default=None, help='Verzeichnis fuer provision.log')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug-Logging')
    sub = parser.add_subparsers(dest='command')

    p_cascade = sub.add_parser('cascade', help='Kaskade eines Umsatzes anzeigen')
    p_cascade.add_argument('--data', required=True, help='Datenbestand (.json/.xlsx)')
    p_cascade.add_argument('--entry', required=True, help='Umsatz-ID')
    p_cascade.add_argument('--json', action='store_true', help='Ausgabe als JSON')
    p_cascade.set_defaults(func=cmd_cascade)

    p_report = sub.add_parser('report', help='Provisionsabrechnung eines Mitarbeiters')
    p_report.add_argument('--data', required=True, help='Datenbestand (.json/.xlsx)')
    p_report.add_argument('--employee', required=True, help='Mitarbeiter-ID (Knoten im Organigramm)')
    p_report.add_argument('--month', default=None, help='Abrechnungsmonat JJJJ-MM')
    p_report.add_argument('--json', action='store_true', help='Ausgabe als JSON')
    p_report.set_defaults(func=cmd_report)

    p_summary = sub.add_parser('summary', help='Provisions-Summen je Teilnehmer')
    p_summary.add_argument('--data', required=True, help='Datenbestand (.json/.xlsx)')
    p_summary.set_defaults(func=cmd_summary)

    p_migrate = sub.add_parser('migrate', help='Provisions-Snapshots fuer Altdaten nachtragen')
    p_migrate.add_argument('--data', required=True, help='Datenbestand (.json/.xlsx)')
    p_migrate.add_argument('--output', default=None, help='Ziel-JSON mit Snapshots')
    p_migrate.add_argument('--dry-run', action='store_true', help='Nur zaehlen, nichts schreiben')
    p_migrate.add_argument('--legacy-mapping', action='store_true',
                           help='Energievertraege wie Altdaten dem Bank-Satz zuordnen')
    p_migrate.set_defaults(func=cmd_migrate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 2

    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    try:
        return args.func(args)
    except ProvisionError as e:
        logger.error(f"{args.command} fehlgeschlagen: {e.message}")
        print(f"Fehler: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error(f"{args.command}: Datei nicht lesbar/schreibbar: {e}")
        print(f"Fehler: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
