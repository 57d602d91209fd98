"""Damped Newton-Raphson NDT matching against an overlapping multi-grid.

The reference cloud is turned into a MultiGrid once per call. Every pass
scores the current pose against all sub-grids, keeps the best scoring one,
and takes a Newton step on its derivatives:

    H' = H + lambda * (max(H) - min(H)) * I
    delta = lstsq(H', g)

A pass whose best score is lower than the last accepted score is rejected:
the previous pose is restored and lambda is doubled. The diagonal loading
is a heuristic and does not guarantee H' is positive definite; the least
squares solve handles whatever rank is left.
"""
import numpy as np
import scipy.linalg

from .config import MatcherConfig
from .distribution import CovarianceLimit
from .multi_grid import MultiGrid
from .numba_kernels import accumulate_ndt_derivatives_jit
from .transform import apply, point_derivatives, pose_matrix, pose_params
from .types import MatchResult, PointCloud


def solve_damped(hessian: np.ndarray, gradient: np.ndarray, damping: float) -> np.ndarray:
    """Diagonal loading followed by a rank-tolerant solve of H' delta = g."""
    H = hessian.copy()
    H[np.diag_indices_from(H)] += damping * (H.max() - H.min())
    try:
        # gelsy: complete orthogonal factorization with column pivoting
        delta, _, _, _ = scipy.linalg.lstsq(H, gradient, lapack_driver='gelsy')
    except (np.linalg.LinAlgError, ValueError):
        delta = np.linalg.pinv(H) @ gradient
    return delta


class MultiGridMatcher:
    """NDT scan matcher for 2-D (x, y, phi) and 3-D (x, y, z, roll, pitch, yaw)."""

    def __init__(self, resolution, max_iterations: int = 100,
                 eps_trans: float = 1e-3, eps_rot: float = 1e-3,
                 damping: float = 2.0,
                 covariance_limit: CovarianceLimit = None,
                 verbose: bool = False):
        """
        Args:
            resolution: Cell edge length, scalar or one value per axis.
            max_iterations: Cap on loop passes, rejected passes included.
            eps_trans: Convergence threshold on every translation increment.
            eps_rot: Convergence threshold on every angular increment.
            damping: Initial diagonal loading factor lambda, must be > 0.
            covariance_limit: Eigenvalue floor policy for the grid cells.
            verbose: Print one line per pass.
        """
        resolution = np.atleast_1d(np.asarray(resolution, dtype=np.float64))
        if np.any(resolution <= 0.0):
            raise ValueError(f"resolution must be positive, got {resolution}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        # doubling on rejection needs a positive seed
        if damping <= 0.0:
            raise ValueError(f"damping must be positive, got {damping}")
        self.resolution = resolution
        self.max_iterations = max_iterations
        self.eps_trans = eps_trans
        self.eps_rot = eps_rot
        self.damping = damping
        self.covariance_limit = covariance_limit
        self.verbose = verbose

    @classmethod
    def from_config(cls, config: MatcherConfig, verbose: bool = False) -> 'MultiGridMatcher':
        return cls(resolution=config.resolution,
                   max_iterations=config.max_iterations,
                   eps_trans=config.eps_trans,
                   eps_rot=config.eps_rot,
                   damping=config.damping,
                   covariance_limit=config.covariance_limit(),
                   verbose=verbose)

    def _check_cloud(self, cloud: PointCloud, name: str):
        if self.resolution.shape[0] not in (1, cloud.dim):
            raise ValueError(f"resolution has {self.resolution.shape[0]} entries, "
                             f"{name} cloud is {cloud.dim}-D")
        cloud_range = cloud.range()
        if not np.all(np.isfinite(cloud_range)):
            raise ValueError(f"{name} cloud contains non-finite valid points: "
                             f"range {cloud_range}")
        if np.any(cloud_range <= 0.0):
            raise ValueError(f"Point cloud boundaries are not set properly: "
                             f"{name} range {cloud_range}")

    def build_grid(self, reference: PointCloud) -> MultiGrid:
        """The multi-grid match() builds for ``reference``."""
        self._check_cloud(reference, 'reference')
        return MultiGrid.from_cloud(reference, self.resolution, self.covariance_limit)

    def score(self, grid: MultiGrid, source: PointCloud, params):
        """Score, gradient and Hessian of every sub-grid at ``params``."""
        src = source.valid_points()
        points_w = apply(pose_matrix(params), src)
        means, inv_covs, valid = grid.lookup(points_w)
        jac, hess_q = point_derivatives(params, src)
        return accumulate_ndt_derivatives_jit(points_w, means, inv_covs, valid, jac, hess_q)

    def match(self, reference: PointCloud, source: PointCloud,
              prior: np.ndarray = None) -> MatchResult:
        """Estimate the transform mapping ``source`` onto ``reference``.

        Args:
            reference: Cloud the grid is built from.
            source: Cloud to align.
            prior: Initial (D+1, D+1) transform, identity if None.

        Returns:
            MatchResult with the last accepted pose and its score. Hitting
            the iteration cap is reported through ``converged=False``.

        Raises:
            ValueError: on a non-positive cloud range or mismatched dimensions.
        """
        if reference.dim != source.dim:
            raise ValueError(f"reference is {reference.dim}-D, source is {source.dim}-D")
        self._check_cloud(source, 'source')
        grid = self.build_grid(reference)
        dim = reference.dim

        if prior is None:
            prior = np.eye(dim + 1)
        params = pose_params(prior)
        prev_params = params.copy()
        accepted_params = params.copy()

        prev_score = -np.inf
        damping = self.damping
        iteration = 0
        rejected = 0
        converged = False
        history = []

        while True:
            score, gradient, hessian = self.score(grid, source, params)
            best = int(np.argmax(score))
            max_score = score[best]
            iteration += 1

            if max_score < prev_score:
                damping *= 2.0
                params = prev_params.copy()
                rejected += 1
                if self.verbose:
                    print(f"[ NDT ] iter {iteration}: score {max_score:.4f} < "
                          f"{prev_score:.4f}, rejected, damping {damping:g}")
                if iteration >= self.max_iterations:
                    break
                continue

            prev_score = max_score
            accepted_params = params.copy()
            history.append(float(max_score))

            delta = solve_damped(hessian[best], gradient[best], damping)
            prev_params = params.copy()
            params = params + delta

            if self.verbose:
                print(f"[ NDT ] iter {iteration}: score {max_score:.4f} "
                      f"grid {best} delta {np.array2string(delta, precision=5)}")

            if (np.all(np.abs(delta[0:dim]) < self.eps_trans) and
                    np.all(np.abs(delta[dim:]) < self.eps_rot)):
                converged = True
                break
            if iteration >= self.max_iterations:
                break

        if self.verbose:
            status = "converged" if converged else "stopped at iteration cap"
            print(f"[ NDT ] {status} after {iteration} iterations "
                  f"({rejected} rejected), score {prev_score:.4f}")

        return MatchResult(
            transform=pose_matrix(accepted_params),
            params=accepted_params,
            score=float(prev_score),
            iterations=iteration,
            converged=converged,
            damping=damping,
            rejected_steps=rejected,
            score_history=history,
        )
