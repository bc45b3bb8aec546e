#!/usr/bin/env python
"""
Purinergic panel plots for the six adipose datasets.

Usage:
    python scripts/panel_extraction.py --config configs/adipose_panel.yaml
"""

from purinergic_sc.panel_extraction import main


if __name__ == "__main__":
    main()
