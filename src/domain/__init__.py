"""
Domain-Schicht: reine Datenklassen und fachliche Regeln ohne I/O.
"""
