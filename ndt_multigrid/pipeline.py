"""Scan-to-scan NDT odometry over an ordered sequence of scans.

Each scan is matched against the previous one; the relative transform is
chained onto the running pose. The previous relative motion is used as the
prior for the next match (constant velocity).
"""
import os
import time
import numpy as np
from tqdm import tqdm

from .config import PipelineConfig
from .matcher import MultiGridMatcher
from .numba_kernels import warmup as numba_warmup
from .output import read_scan_csv, write_odometry_csv, write_tum
from .preprocess import Preprocessor


class ScanMatchingPipeline:
    """Offline NDT odometry: list of scans in, trajectory out."""

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.dim = config.preprocess.dim
        self.preprocessor = Preprocessor(
            min_range=config.preprocess.min_range,
            filter_size=config.preprocess.filter_size,
        )
        self.matcher = MultiGridMatcher.from_config(config.matcher,
                                                    verbose=config.verbose)
        self.pose = np.eye(self.dim + 1)
        self.trajectory = []   # list of (timestamp, T)
        self.results = []      # MatchResult per matched scan

    def reset(self):
        self.pose = np.eye(self.dim + 1)
        self.trajectory = []
        self.results = []

    def process(self, scans, timestamps=None) -> list:
        """Run odometry over in-memory scans.

        Args:
            scans: Sequence of (N_i, D) arrays in their sensor frames.
            timestamps: Optional per-scan timestamps, defaults to the index.

        Returns:
            The trajectory as a list of (timestamp, T) world poses.
        """
        if timestamps is None:
            timestamps = [float(i) for i in range(len(scans))]
        prev_cloud = None
        motion = np.eye(self.dim + 1)
        t_start = time.time()

        pbar = tqdm(enumerate(scans), total=len(scans), desc="Matching scans",
                    unit="scan", dynamic_ncols=True, disable=len(scans) < 2)
        for i, points in pbar:
            cloud = self.preprocessor.process(points)
            if len(cloud) == 0 or np.any(cloud.range() <= 0.0):
                tqdm.write(f"[Pipeline] Scan {i} has a degenerate extent, skipped")
                continue

            if prev_cloud is not None:
                result = self.matcher.match(prev_cloud, cloud, prior=motion)
                self.results.append(result)
                motion = result.transform
                self.pose = self.pose @ motion
                if not result.converged:
                    tqdm.write(f"[Pipeline] Scan {i} did not converge in "
                               f"{result.iterations} iterations "
                               f"(score {result.score:.2f})")
                pbar.set_postfix(score=f"{result.score:.1f}",
                                 iters=result.iterations)

            self.trajectory.append((timestamps[i], self.pose.copy()))
            prev_cloud = cloud

        pbar.close()
        elapsed = time.time() - t_start
        if self.config.verbose:
            print(f"[Pipeline] {len(self.trajectory)} poses in {elapsed:.1f}s")
        return self.trajectory

    def run(self, scan_paths: list, output_path: str):
        """Process CSV scans from disk and write the trajectory.

        Args:
            scan_paths: Ordered scan CSV files.
            output_path: Trajectory file; ``.csv`` writes odometry CSV,
                anything else TUM.
        """
        print("[Pipeline] Compiling Numba JIT kernels...")
        numba_warmup()
        print("[Pipeline] JIT compilation complete.")

        print(f"[Pipeline] Reading {len(scan_paths)} scans")
        scans = [read_scan_csv(p, self.dim) for p in scan_paths]
        stamps = [float(i) for i in range(len(scans))]

        self.reset()
        self.process(scans, stamps)

        out_dir = os.path.dirname(output_path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        if output_path.endswith('.csv'):
            write_odometry_csv(output_path, self.trajectory)
        else:
            write_tum(output_path, self.trajectory)
        print(f"[Pipeline] Trajectory written to: {output_path}")
