"""Tests for scan preprocessing and trajectory / scan files."""
import numpy as np
import pytest

from ndt_multigrid.downsampler import voxel_grid_downsample
from ndt_multigrid.output import (
    read_scan_csv, write_odometry_csv, write_scan_csv, write_tum)
from ndt_multigrid.preprocess import Preprocessor
from ndt_multigrid.transform import se2, se3


class TestDownsample:

    def test_centroid_per_voxel(self):
        points = np.array([[0.1, 0.1], [0.3, 0.3], [1.5, 1.5]])
        out = voxel_grid_downsample(points, 1.0)
        np.testing.assert_allclose(out, [[0.2, 0.2], [1.5, 1.5]])

    def test_zero_leaf_keeps_everything(self, rng):
        points = rng.normal(size=(20, 3))
        np.testing.assert_allclose(voxel_grid_downsample(points, 0.0), points)


class TestPreprocessor:

    def test_drops_near_and_non_finite_points(self):
        points = np.array([[0.05, 0.0], [np.nan, 1.0], [2.0, 0.0], [0.0, -3.0]])
        cloud = Preprocessor(min_range=0.1).process(points)
        np.testing.assert_allclose(cloud.points, [[2.0, 0.0], [0.0, -3.0]])
        assert cloud.mask.all()


class TestFiles:

    def test_scan_csv(self, tmp_path, rng):
        points = rng.normal(size=(10, 3))
        path = str(tmp_path / "scan.csv")
        write_scan_csv(path, points)
        np.testing.assert_allclose(read_scan_csv(path, dim=3), points, atol=1e-6)
        np.testing.assert_allclose(read_scan_csv(path, dim=2), points[:, 0:2], atol=1e-6)

    def test_scan_csv_with_too_few_columns(self, tmp_path):
        path = tmp_path / "scan.csv"
        path.write_text("x,y\n1.0,2.0\n3.0,4.0\n")
        with pytest.raises(ValueError):
            read_scan_csv(str(path), dim=3)

    def test_odometry_csv_from_planar_poses(self, tmp_path):
        path = tmp_path / "odometry.csv"
        write_odometry_csv(str(path), [(0.0, np.eye(3)),
                                       (1.0, se2(1.0, 2.0, np.pi / 2))])
        lines = path.read_text().splitlines()
        assert lines[0] == "timestamp,tx,ty,tz,qx,qy,qz,qw"
        row = [float(v) for v in lines[2].split(',')]
        np.testing.assert_allclose(row[1:4], [1.0, 2.0, 0.0])
        s = np.sqrt(0.5)
        np.testing.assert_allclose(row[4:8], [0.0, 0.0, s, s], atol=1e-6)

    def test_tum_from_spatial_poses(self, tmp_path):
        path = tmp_path / "odometry.txt"
        write_tum(str(path), [(2.5, se3([1.0, 0.0, -1.0], [0.0, 0.0, 0.0]))])
        fields = path.read_text().split()
        assert len(fields) == 8
        np.testing.assert_allclose([float(v) for v in fields],
                                   [2.5, 1.0, 0.0, -1.0, 0.0, 0.0, 0.0, 1.0])
