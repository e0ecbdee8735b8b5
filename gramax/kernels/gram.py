# © Crown Copyright GCHQ
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

r"""
Dense matrices of the base pairwise metrics.

Rather than evaluating a metric pair by pair, the routines in this module assemble the
full matrix from matrix products. For the scalar product of a single observation set
:math:`X \in \mathbb{R}^{n \times d}` this is the Gram matrix :math:`X X^T`; for the
squared Euclidean distance the identity

.. math::

    \|x_i - y_j\|^2 = \langle x_i, x_i \rangle - 2 \langle x_i, y_j \rangle
        + \langle y_j, y_j \rangle

is used. Single-set matrices are symmetric: one triangle of the full product is kept and
mirrored, which makes the output exactly symmetric but does not halve the work.
Cancellation can leave squared distances slightly negative; such entries are clamped to
zero.

A weight vector :math:`w` is applied by pre-scaling an operand: for a single set the
observations are scaled by :math:`w`, for two sets the second operand is scaled by
:math:`w^2` (and the self-products of both sets are weighted).
"""

from typing import Optional, Union

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike, DTypeLike
from jaxtyping import Shaped

from gramax.data import Observations, as_observation_pair, as_observations
from gramax.kernels.base import PairwiseFunction
from gramax.util import log_allocation
from gramax.validation import validate_is_instance, validate_weights

_ObservationsLike = Union[Shaped[ArrayLike, " *n"], Observations]


def _triangle(array: Shaped[Array, " n n"], upper: bool, k: int = 0) -> Array:
    """Keep one triangle of a square array, zeroing the other."""
    if upper:
        return jnp.triu(array, k)
    return jnp.tril(array, -k)


def _mirror(triangle: Shaped[Array, " n n"], upper: bool) -> Shaped[Array, " n n"]:
    """Complete a triangular array to an exactly symmetric one."""
    return triangle + _triangle(triangle, upper, k=1).T


def _as_weights(
    weights: Optional[Shaped[ArrayLike, " d"]], dimension: int, dtype: DTypeLike
) -> Optional[Shaped[Array, " d"]]:
    if weights is None:
        return None
    weights = jnp.atleast_1d(jnp.asarray(weights, dtype=dtype))
    validate_weights(weights.shape[0], dimension)
    return weights


def _self_products(
    points: Shaped[Array, " n d"], weights: Optional[Shaped[Array, " d"]]
) -> Shaped[Array, " n"]:
    """Return the (weighted) squared norm of every observation."""
    scaled = points if weights is None else points * weights
    return jnp.sum(scaled**2, axis=1)


def _scalar_products(
    x_points: Shaped[Array, " n d"],
    y_points: Optional[Shaped[Array, " m d"]],
    weights: Optional[Shaped[Array, " d"]],
    upper: bool,
    symmetrize: bool,
) -> Shaped[Array, " n m"]:
    if y_points is None:
        scaled = x_points if weights is None else x_points * weights
        products = _triangle(jnp.matmul(scaled, scaled.T, precision="highest"), upper)
        return _mirror(products, upper) if symmetrize else products
    scaled_y = y_points if weights is None else y_points * weights**2
    return jnp.matmul(x_points, scaled_y.T, precision="highest")


def scalar_product_matrix(
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
    *,
    transposed: bool = False,
    upper: bool = True,
    symmetrize: bool = True,
    dtype: Optional[DTypeLike] = None,
) -> Shaped[Array, " n m"]:
    r"""
    Calculate the matrix of (weighted) scalar products between two observation sets.

    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` computes the
        symmetric :math:`n \times n` Gram matrix of ``x``
    :param weights: Optional weight vector of length :math:`d`
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param upper: Compute the upper (rather than the lower) triangle of a single-set
        matrix
    :param symmetrize: Mirror the computed triangle of a single-set matrix; if
        :data:`False` the other triangle is left zero
    :param dtype: Optional floating point type of the computation
    :return: The :math:`n \times m` matrix of scalar products
    :raises DimensionMismatchError: Raised if the feature dimensions or the weight
        length disagree
    """
    if y is None:
        x_points = as_observations(x, transposed, dtype).points
        y_points = None
        shape = (x_points.shape[0], x_points.shape[0])
    else:
        x_points, y_points = as_observation_pair(x, y, transposed, dtype)
        shape = (x_points.shape[0], y_points.shape[0])
    weights = _as_weights(weights, x_points.shape[1], x_points.dtype)
    log_allocation("scalar-product matrix", shape)
    return _scalar_products(x_points, y_points, weights, upper, symmetrize)


def squared_distance_matrix(
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
    *,
    transposed: bool = False,
    upper: bool = True,
    symmetrize: bool = True,
    dtype: Optional[DTypeLike] = None,
) -> Shaped[Array, " n m"]:
    r"""
    Calculate the matrix of (weighted) squared distances between two observation sets.

    The single-set matrix has an exactly zero diagonal and is exactly symmetric when
    ``symmetrize`` is :data:`True`.

    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` computes the
        symmetric :math:`n \times n` distance matrix of ``x``
    :param weights: Optional weight vector of length :math:`d`
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param upper: Compute the upper (rather than the lower) triangle of a single-set
        matrix
    :param symmetrize: Mirror the computed triangle of a single-set matrix; if
        :data:`False` the other triangle is left zero
    :param dtype: Optional floating point type of the computation
    :return: The :math:`n \times m` matrix of squared distances
    :raises DimensionMismatchError: Raised if the feature dimensions or the weight
        length disagree
    """
    if y is None:
        x_points = as_observations(x, transposed, dtype).points
        weights = _as_weights(weights, x_points.shape[1], x_points.dtype)
        log_allocation("squared-distance matrix", (x_points.shape[0],) * 2)
        products = _scalar_products(x_points, None, weights, upper, symmetrize=False)
        norms = jnp.diag(products)
        distances = norms[:, None] - 2 * products + norms[None, :]
        distances = _triangle(jnp.maximum(distances, 0), upper)
        distances = jnp.fill_diagonal(distances, 0, inplace=False)
        return _mirror(distances, upper) if symmetrize else distances

    x_points, y_points = as_observation_pair(x, y, transposed, dtype)
    weights = _as_weights(weights, x_points.shape[1], x_points.dtype)
    log_allocation("squared-distance matrix", (x_points.shape[0], y_points.shape[0]))
    products = _scalar_products(x_points, y_points, weights, upper, symmetrize)
    distances = (
        _self_products(x_points, weights)[:, None]
        - 2 * products
        + _self_products(y_points, weights)[None, :]
    )
    return jnp.maximum(distances, 0)


def kernel_matrix(
    function: PairwiseFunction,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Shaped[Array, " n m"]:
    """
    Evaluate any pairwise function on every pair of observations of ``x`` and ``y``.

    :param function: A :class:`~gramax.kernels.base.PairwiseFunction`, either a base
        metric or a composite
    :param x: First observation set
    :param y: Second observation set; :data:`None` means ``y`` is ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param dtype: Optional floating point type of the computation
    :return: The matrix of evaluations
    """
    validate_is_instance(function, "function", PairwiseFunction)
    return function.matrix(x, y, transposed=transposed, dtype=dtype)
