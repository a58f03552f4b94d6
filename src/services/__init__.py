"""
Services: Kaskaden-Berechnung, Snapshots, Aggregation, Abrechnung und Datenimport.
"""
