# Provisions-Kaskade - Hauptpaket
"""
Hierarchische Provisionsberechnung: Aufteilung eines Umsatzes auf Erfasser,
Tippgeber, Fuehrungskraefte und Unternehmen sowie Abrechnung je Mitarbeiter.

Struktur:
- src/config/     - Provisions-Regeln (Kategorie-Mapping, Rundung, Ausschluesse)
- src/domain/     - Domain-Modelle (Organigramm, Umsatz, Kaskade, Abrechnung)
- src/services/   - Kaskaden-Rechner, Snapshots, Aggregation, Berichte, Import
- src/main.py     - Haupteinstiegspunkt (Kommandozeile)
"""

__version__ = "0.1.0"
__author__ = "Provisions-Team"
