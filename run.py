#!/usr/bin/env python3
"""NDT multi-grid scan matching odometry from a source checkout.

Usage:
    python run.py scans/
    python run.py scans/ --config custom.yaml
    python run.py scans/ --output-dir results/ --tum
"""
from ndt_multigrid.cli import main


if __name__ == '__main__':
    main()
