#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Startskript fuer die Provisions-Kaskade.

Verwendung:
    python run.py cascade --data daten.json --entry r-1
    python run.py report --data daten.xlsx --employee berater-1 --month 2025-03
    python run.py migrate --data daten.json --output daten_migriert.json
"""

import sys
import os

# Fuege src-Verzeichnis zum Python-Pfad hinzu
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from main import main

if __name__ == "__main__":
    sys.exit(main())
