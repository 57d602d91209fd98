"""Numba JIT-compiled kernels for the matcher's inner loop.

Targets:

1. gaussian_non_normalized_jit: exp(-0.5 q^T Sigma^-1 q) for one offset
2. accumulate_ndt_derivatives_jit: score, gradient and Hessian of the NDT
   score for every sub-grid of the multi-grid in one pass over the points
"""
import math
import numpy as np
from numba import njit


@njit(cache=True)
def quadratic_form_jit(q, inv_cov):
    """q^T A q for a (D,) vector and (D, D) matrix."""
    D = q.shape[0]
    e = 0.0
    for i in range(D):
        tmp = 0.0
        for j in range(D):
            tmp += inv_cov[i, j] * q[j]
        e += q[i] * tmp
    return e


@njit(cache=True)
def gaussian_non_normalized_jit(q, inv_cov):
    """Gaussian without its normalization constant, evaluated at offset q."""
    return math.exp(-0.5 * quadratic_form_jit(q, inv_cov))


@njit(cache=True)
def accumulate_ndt_derivatives_jit(points_w, means, inv_covs, valid, jac, hess_q):
    """Accumulate NDT score, gradient and Hessian per sub-grid.

    With q = p - mean, a = Sigma^-1 q and s = exp(-0.5 q.a):
        score     += s
        gradient  -= s * (a . J_i)
        hessian   += s * (-(a . J_i)(a . J_j) + a . d2q_ij + J_i^T Sigma^-1 J_j)

    ``hessian`` is the negated second derivative of the score, so
    hessian^-1 @ gradient is an ascent step.

    Args:
        points_w: (N, D) transformed source points.
        means: (N, G, D) distribution mean per point and sub-grid.
        inv_covs: (N, G, D, D) inverse covariances.
        valid: (N, G) False where the cell is missing or has too few samples.
        jac: (N, D, P) d(point)/d(params).
        hess_q: (N, P, P, D) d2(point)/d(params)^2.

    Returns:
        score: (G,)
        gradient: (G, P)
        hessian: (G, P, P)
    """
    N = points_w.shape[0]
    D = points_w.shape[1]
    G = valid.shape[1]
    P = jac.shape[2]

    score = np.zeros(G)
    gradient = np.zeros((G, P))
    hessian = np.zeros((G, P, P))

    q = np.empty(D)
    a = np.empty(D)
    a_jac = np.empty(P)
    cov_jac = np.empty((D, P))

    for n in range(N):
        for g in range(G):
            if not valid[n, g]:
                continue
            inv_cov = inv_covs[n, g]

            for d in range(D):
                q[d] = points_w[n, d] - means[n, g, d]

            # a = Sigma^-1 q (symmetric, so equals q^T Sigma^-1)
            e = 0.0
            for d in range(D):
                tmp = 0.0
                for k in range(D):
                    tmp += inv_cov[d, k] * q[k]
                a[d] = tmp
                e += q[d] * tmp
            s = math.exp(-0.5 * e)
            if s == 0.0:
                continue

            for i in range(P):
                tmp = 0.0
                for d in range(D):
                    tmp += a[d] * jac[n, d, i]
                a_jac[i] = tmp

            # Sigma^-1 J
            for d in range(D):
                for i in range(P):
                    tmp = 0.0
                    for k in range(D):
                        tmp += inv_cov[d, k] * jac[n, k, i]
                    cov_jac[d, i] = tmp

            score[g] += s
            for i in range(P):
                gradient[g, i] -= s * a_jac[i]
                for j in range(P):
                    jsj = 0.0
                    a_h = 0.0
                    for d in range(D):
                        jsj += jac[n, d, i] * cov_jac[d, j]
                        a_h += a[d] * hess_q[n, i, j, d]
                    hessian[g, i, j] += s * (-a_jac[i] * a_jac[j] + a_h + jsj)

    return score, gradient, hessian


def warmup():
    """Pre-compile all JIT functions with dummy data for 2-D and 3-D."""
    for dim, n_params in ((2, 3), (3, 6)):
        G = 2 ** dim
        q = np.ones(dim)
        A = np.eye(dim)
        quadratic_form_jit(q, A)
        gaussian_non_normalized_jit(q, A)
        accumulate_ndt_derivatives_jit(
            np.random.randn(2, dim), np.random.randn(2, G, dim),
            np.tile(np.eye(dim), (2, G, 1, 1)), np.ones((2, G), dtype=np.bool_),
            np.random.randn(2, dim, n_params),
            np.random.randn(2, n_params, n_params, dim))
