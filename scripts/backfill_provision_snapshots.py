"""
Backfill-Script: Provisions-Snapshots fuer Altdaten nachtragen.

Einmalig ausfuehren, um fuer alle Umsaetze ohne Snapshot die aktuellen
Saetze von Erfasser und direktem Vorgesetzten einzufrieren. Umsaetze mit
vollstaendigem Snapshot werden uebersprungen; wiederholte Laeufe sind
ohne Wirkung.

Energievertraege werden wie in den Altdaten dem Bank-Satz zugeordnet.

Aufruf:
    python scripts/backfill_provision_snapshots.py --data daten.json --output daten_migriert.json

Optionen:
    --dry-run         Nur zaehlen, nichts schreiben
    --current-mapping Aktuelles Kategorie-Mapping statt Altdaten-Mapping verwenden
"""

import sys
import os
import time
import argparse
import logging

# src-Verzeichnis zum Path hinzufuegen
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(PROJECT_ROOT, 'src'))

from config.provision_rules import CategoryRateMapping
from domain.provision.errors import ProvisionError
from services.provision_snapshot import SnapshotResolver
from services.record_loader import load_data, save_json

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger("backfill")


def main():
    parser = argparse.ArgumentParser(
        description="Backfill: Provisions-Snapshots fuer Altdaten nachtragen"
    )
    parser.add_argument('--data', required=True,
                        help='Datenbestand (.json oder .xlsx)')
    parser.add_argument('--output', default=None,
                        help='Ziel-JSON (Standard: --data, nur bei .json)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Nur zaehlen, nichts schreiben')
    parser.add_argument('--current-mapping', action='store_true',
                        help='Aktuelles Kategorie-Mapping verwenden')
    args = parser.parse_args()

    print("=" * 60)
    print("  Provisions-Kaskade - Backfill: Provisions-Snapshots")
    if args.dry_run:
        print("  *** DRY RUN - keine Aenderungen ***")
    print("=" * 60)

    output = args.output
    if output is None and not args.dry_run:
        if not args.data.lower().endswith('.json'):
            logger.error("--output ist fuer Excel-Quellen erforderlich")
            sys.exit(2)
        output = args.data

    try:
        dataset = load_data(args.data)
    except (ProvisionError, OSError) as e:
        logger.error(f"Datenbestand nicht lesbar: {e}")
        sys.exit(1)

    if dataset.has_errors:
        logger.warning(f"{len(dataset.errors)} Umsaetze beim Laden verworfen")

    mapping = CategoryRateMapping() if args.current_mapping else CategoryRateMapping.legacy()
    resolver = SnapshotResolver(mapping)

    start_time = time.time()
    result = resolver.backfill(dataset.entries, dataset.tree, dry_run=args.dry_run)
    elapsed = time.time() - start_time

    print(f"\nZusammenfassung:")
    print(f"  Gesamt:              {result.total}")
    print(f"  Migriert:            {result.migrated}")
    print(f"  Bereits Snapshot:    {result.skipped}")
    print(f"  Fehlgeschlagen:      {result.failed}")
    print(f"  Dauer:               {elapsed:.1f}s")

    for error in result.errors:
        print(f"  - {error['entryId']}: {error['message']}")

    if args.dry_run:
        print(f"\nKeine Aenderungen vorgenommen.")
        return

    save_json(dataset, output)
    print(f"\nGespeichert: {output}")
    if result.has_errors:
        sys.exit(1)


if __name__ == '__main__':
    main()
