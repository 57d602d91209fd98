"""NDT multi-grid scan matching odometry.

One-command processing: folder of scan CSVs in -> odometry trajectory out.

Usage:
    ndt-run scans/
    ndt-run scans/ --config custom.yaml
    ndt-run scans/ --output-dir results/ --tum

From a source checkout, ``python run.py`` takes the same arguments.

Input: one CSV per scan with an ``x,y[,z]`` header, processed in file-name
order. Output (saved to --output-dir, default: the scans folder):
    odometry.csv  - trajectory (timestamp, tx,ty,tz, qx,qy,qz,qw)
    odometry.txt  - the same in TUM format when --tum is given
"""
import argparse
import os
import sys
import time

from .config import load_config, validate_config
from .pipeline import ScanMatchingPipeline


def find_scan_files(scans_dir):
    """All .csv files directly under a directory, sorted by name."""
    return sorted(os.path.join(scans_dir, f) for f in os.listdir(scans_dir)
                  if f.endswith('.csv'))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='NDT multi-grid scan matching odometry\n\n'
                    'Match consecutive scans and write the trajectory.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('scans', help='Folder of per-scan CSV files')
    parser.add_argument('--config', default=None,
                        help='Path to YAML config file '
                             '(default: ndt_2d.yaml shipped with the package)')
    parser.add_argument('--output-dir', default=None,
                        help='Output directory '
                             '(default: the scans folder)')
    parser.add_argument('--dim', type=int, choices=(2, 3), default=None,
                        help='Override point dimension from config')
    parser.add_argument('--tum', action='store_true',
                        help='Write TUM trajectory instead of CSV')
    parser.add_argument('--verbose', action='store_true',
                        help='Print matcher iterations')

    args = parser.parse_args(argv)

    scans_dir = os.path.abspath(args.scans)
    if not os.path.isdir(scans_dir):
        print(f"Error: Scans folder not found: {scans_dir}")
        sys.exit(1)

    scan_paths = find_scan_files(scans_dir)
    if len(scan_paths) < 2:
        print(f"Error: Need at least 2 scan CSV files in {scans_dir}, "
              f"found {len(scan_paths)}")
        sys.exit(1)

    if args.config:
        config_path = os.path.abspath(args.config)
    else:
        config_path = os.path.join(
            os.path.dirname(os.path.abspath(__file__)), 'ndt_2d.yaml')
    if not os.path.isfile(config_path):
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)

    config = load_config(config_path)
    if args.dim is not None and args.dim != config.preprocess.dim:
        config.matcher.resolution = [config.matcher.resolution[0]] * args.dim
        config.preprocess.dim = args.dim
        validate_config(config)
    if args.verbose:
        config.verbose = True

    out_dir = os.path.abspath(args.output_dir) if args.output_dir else scans_dir
    os.makedirs(out_dir, exist_ok=True)
    odom_path = os.path.join(out_dir, 'odometry.txt' if args.tum else 'odometry.csv')

    print("=" * 60)
    print("  NDT Multi-Grid Scan Matching")
    print("=" * 60)
    print(f"  Scans:      {scans_dir} ({len(scan_paths)} files)")
    print(f"  Config:     {config_path}")
    print(f"  Dimension:  {config.preprocess.dim}-D")
    print(f"  Output:     {odom_path}")
    print("=" * 60)

    t0 = time.time()
    pipeline = ScanMatchingPipeline(config)
    pipeline.run(scan_paths, odom_path)

    n_unconverged = sum(1 for r in pipeline.results if not r.converged)
    total = time.time() - t0
    print(f"\n  Total time: {total:.1f}s, {len(pipeline.results)} matches, "
          f"{n_unconverged} not converged")


if __name__ == '__main__':
    main()
