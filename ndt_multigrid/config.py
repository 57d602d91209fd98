"""Configuration loader for the NDT matcher and scan pipeline.

Reads YAML files with ``ndt``, ``preprocess`` and ``common`` sections.
Missing keys keep the dataclass defaults.
"""
import yaml
from dataclasses import dataclass, field

from .distribution import CovarianceLimit


@dataclass
class MatcherConfig:
    """MultiGridMatcher parameters."""
    resolution: list = field(default_factory=lambda: [1.0, 1.0])
    max_iterations: int = 100
    eps_trans: float = 1e-3
    eps_rot: float = 1e-3
    damping: float = 2.0  # initial lambda for the diagonal loading
    limit_covariance: bool = True
    lambda_ratio: float = 0.01

    def covariance_limit(self):
        """Policy object for the grids, None when limiting is disabled."""
        if not self.limit_covariance:
            return None
        return CovarianceLimit(lambda_ratio=self.lambda_ratio)


@dataclass
class PreprocessConfig:
    """Scan preprocessing parameters."""
    dim: int = 2
    filter_size: float = 0.0  # voxel downsampling leaf size, 0 = off
    min_range: float = 0.0    # drop points closer than this to the sensor


@dataclass
class PipelineConfig:
    """Full pipeline configuration."""
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    verbose: bool = False


def load_config(yaml_path: str) -> PipelineConfig:
    """Load configuration from a YAML file.

    Raises:
        ValueError: if the resolution does not match the configured
            dimension or a numeric parameter is out of range.
    """
    with open(yaml_path, 'r') as f:
        cfg = yaml.safe_load(f) or {}

    pc = PipelineConfig()

    # Common
    common = cfg.get('common', {})
    pc.verbose = common.get('verbose', pc.verbose)

    # Preprocess
    pre = cfg.get('preprocess', {})
    pp = pc.preprocess
    pp.dim = int(pre.get('dim', pp.dim))
    pp.filter_size = float(pre.get('filter_size', pp.filter_size))
    pp.min_range = float(pre.get('min_range', pp.min_range))

    # Matcher
    ndt = cfg.get('ndt', {})
    mc = pc.matcher
    resolution = ndt.get('resolution', None)
    if resolution is None:
        mc.resolution = [mc.resolution[0]] * pp.dim
    elif isinstance(resolution, (int, float)):
        mc.resolution = [float(resolution)] * pp.dim
    else:
        mc.resolution = [float(r) for r in resolution]
    mc.max_iterations = int(ndt.get('max_iterations', mc.max_iterations))
    mc.eps_trans = float(ndt.get('eps_trans', mc.eps_trans))
    mc.eps_rot = float(ndt.get('eps_rot', mc.eps_rot))
    mc.damping = float(ndt.get('damping', mc.damping))
    mc.limit_covariance = bool(ndt.get('limit_covariance', mc.limit_covariance))
    mc.lambda_ratio = float(ndt.get('lambda_ratio', mc.lambda_ratio))

    validate_config(pc)
    return pc


def validate_config(pc: PipelineConfig):
    """Check cross-field constraints of a PipelineConfig."""
    if pc.preprocess.dim not in (2, 3):
        raise ValueError(f"preprocess.dim must be 2 or 3, got {pc.preprocess.dim}")
    mc = pc.matcher
    if len(mc.resolution) != pc.preprocess.dim:
        raise ValueError(f"ndt.resolution needs {pc.preprocess.dim} entries, "
                         f"got {mc.resolution}")
    if any(r <= 0.0 for r in mc.resolution):
        raise ValueError(f"ndt.resolution must be positive, got {mc.resolution}")
    if mc.max_iterations < 1:
        raise ValueError(f"ndt.max_iterations must be >= 1, got {mc.max_iterations}")
    if mc.eps_trans <= 0.0 or mc.eps_rot <= 0.0:
        raise ValueError("ndt.eps_trans and ndt.eps_rot must be positive")
    if mc.damping <= 0.0:
        raise ValueError(f"ndt.damping must be positive, got {mc.damping}")
    if pc.preprocess.filter_size < 0.0:
        raise ValueError(f"preprocess.filter_size must be >= 0, "
                         f"got {pc.preprocess.filter_size}")
