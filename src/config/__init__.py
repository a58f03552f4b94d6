"""
Konfiguration fuer die Provisionsberechnung.

Alle fachlichen Konstanten (Kategorie-Mapping, Toleranzen, Abrechnungsregeln)
liegen zentral in provision_rules.py.
"""
