"""Tests for the YAML configuration loader."""
import pytest

from ndt_multigrid.config import PipelineConfig, load_config


def write_yaml(tmp_path, text):
    path = tmp_path / "ndt.yaml"
    path.write_text(text)
    return str(path)


class TestLoadConfig:

    def test_defaults_for_empty_file(self, tmp_path):
        cfg = load_config(write_yaml(tmp_path, ""))
        defaults = PipelineConfig()
        assert cfg.matcher.max_iterations == defaults.matcher.max_iterations
        assert cfg.matcher.resolution == [1.0, 1.0]
        assert cfg.preprocess.dim == 2
        assert not cfg.verbose

    def test_reads_all_sections(self, tmp_path):
        cfg = load_config(write_yaml(tmp_path, """
common:
  verbose: true
preprocess:
  dim: 3
  filter_size: 0.1
  min_range: 0.5
ndt:
  resolution: 0.75
  max_iterations: 30
  eps_trans: 1.0e-4
  eps_rot: 2.0e-4
  damping: 0.5
  limit_covariance: false
"""))
        assert cfg.verbose
        assert cfg.preprocess.dim == 3
        assert cfg.preprocess.filter_size == 0.1
        assert cfg.preprocess.min_range == 0.5
        assert cfg.matcher.resolution == [0.75, 0.75, 0.75]
        assert cfg.matcher.max_iterations == 30
        assert cfg.matcher.eps_trans == 1e-4
        assert cfg.matcher.eps_rot == 2e-4
        assert cfg.matcher.damping == 0.5
        assert cfg.matcher.covariance_limit() is None

    def test_covariance_limit_policy(self, tmp_path):
        cfg = load_config(write_yaml(tmp_path, "ndt:\n  lambda_ratio: 0.2\n"))
        assert cfg.matcher.covariance_limit().lambda_ratio == 0.2

    @pytest.mark.parametrize("text", [
        "ndt:\n  resolution: [1.0, 1.0, 1.0]\n",
        "ndt:\n  resolution: [1.0, -1.0]\n",
        "ndt:\n  max_iterations: 0\n",
        "preprocess:\n  dim: 4\n",
        "ndt:\n  damping: 0.0\n",
    ])
    def test_rejects_invalid_values(self, tmp_path, text):
        with pytest.raises(ValueError):
            load_config(write_yaml(tmp_path, text))
