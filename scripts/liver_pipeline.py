#!/usr/bin/env python
"""
Liver pipeline: QC, clustering, zonation, purinergic panel and DE table.

Usage:
    python scripts/liver_pipeline.py --config configs/liver.yaml
"""

from purinergic_sc.liver_pipeline import main


if __name__ == "__main__":
    main()
