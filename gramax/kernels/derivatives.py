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
Matrices of kernel derivatives with respect to inputs, weights and hyperparameters.

For a composite :math:`\psi(x, y) = g(f(x, y))` the first derivatives follow from the
chain rule, :math:`\nabla_x \psi = g'(f) \nabla_x f`. The mixed second derivative has a
closed form for both base metrics. Writing :math:`a = g'(z)`, :math:`b = g''(z)` and
:math:`W = diag(w^2)`, for the squared Euclidean distance with
:math:`\tilde\epsilon = W (x - y)`

.. math::

    \frac{\partial^2 \psi}{\partial x \partial y^T} = -4 b \tilde\epsilon
        \tilde\epsilon^T - 2 a W,

and for the scalar product

.. math::

    \frac{\partial^2 \psi}{\partial x \partial y^T} = b (W y)(W x)^T + a W,

so each :math:`d \times d` block costs :math:`O(d^2)` once :math:`z` is known.

Derivatives over two observation sets of sizes :math:`n` and :math:`m` are returned
either as dense tensors, of shape :math:`d \times n \times m` for first derivatives and
:math:`d \times n \times d \times m` for the mixed second derivative, or flattened. In
the flattened :math:`(dn) \times (dm)` second-derivative matrix, the block of the pair
:math:`(x_i, y_j)` occupies rows :math:`di, \dots, di + d - 1` and columns
:math:`dj, \dots, dj + d - 1`. Second-derivative tensors grow as :math:`O(n m d^2)`;
:func:`kernel_matrix_dxdy_blocks` and :func:`kernel_matrix_dxdy_diagonal` avoid
materialising the whole of it.
"""

from collections.abc import Iterator
from functools import partial
from typing import Optional, Union

import equinox as eqx
import jax
import jax.numpy as jnp
from jax import Array, lax, vmap
from jax.typing import ArrayLike, DTypeLike
from jaxtyping import Shaped

from gramax.data import Observations, as_observation_pair, as_observations
from gramax.kernels.composite import CompositeFunction
from gramax.kernels.composition import CompositionClass
from gramax.kernels.pairwise import PairwiseMetric, ScalarProduct, SquaredEuclidean
from gramax.util import log_allocation, pairwise
from gramax.validation import validate_is_instance, validate_weights

_ObservationsLike = Union[Shaped[ArrayLike, " *n"], Observations]
_Differentiable = Union[CompositeFunction, PairwiseMetric]


def _split(
    function: _Differentiable,
) -> tuple[PairwiseMetric, Optional[CompositionClass]]:
    """Return the base metric of ``function`` and its composition class, if any."""
    validate_is_instance(function, "function", (CompositeFunction, PairwiseMetric))
    if isinstance(function, CompositeFunction):
        return function.metric, function.composition
    return function, None


def _closed_form_split(
    function: _Differentiable,
) -> tuple[PairwiseMetric, Optional[CompositionClass]]:
    metric, composition = _split(function)
    if not isinstance(metric, (ScalarProduct, SquaredEuclidean)):
        raise TypeError(
            "mixed second derivatives are only available for functions of "
            f"'ScalarProduct' or 'SquaredEuclidean', not '{type(metric).__name__}'"
        )
    return metric, composition


def _check_weights(metric: PairwiseMetric, dimension: int) -> None:
    if metric.weights is not None:
        validate_weights(metric.weights.shape[0], dimension)


def _observations(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike],
    transposed: bool,
    dtype: Optional[DTypeLike],
) -> tuple[Shaped[Array, " n d"], Shaped[Array, " m d"]]:
    x_points, y_points = as_observation_pair(x, y, transposed, dtype)
    _check_weights(_split(function)[0], x_points.shape[1])
    return x_points, y_points


def _coefficients(
    composition: Optional[CompositionClass], z: Array
) -> tuple[Array, Array]:
    """Return :math:`g'(z)` and :math:`g''(z)`, those of the identity if no class."""
    if composition is None:
        return jnp.ones_like(z), jnp.zeros_like(z)
    return composition.d_value(z), composition.d2_value(z)


def _squared_weights(metric: PairwiseMetric, x: Shaped[Array, " d"]) -> Array:
    if metric.weights is None:
        return jnp.ones_like(x)
    return metric.weights.astype(x.dtype) ** 2


def _block(
    metric: PairwiseMetric,
    composition: Optional[CompositionClass],
    x: Shaped[Array, " d"],
    y: Shaped[Array, " d"],
) -> Shaped[Array, " d d"]:
    z = metric.compute_elementwise(x, y)
    first, second = _coefficients(composition, z)
    squared_weights = _squared_weights(metric, x)
    if isinstance(metric, SquaredEuclidean):
        scaled = squared_weights * (x - y)
        outer = -4 * second * jnp.outer(scaled, scaled)
        return outer - 2 * first * jnp.diag(squared_weights)
    outer = second * jnp.outer(squared_weights * y, squared_weights * x)
    return outer + first * jnp.diag(squared_weights)


def _arrange(
    blocks: Shaped[Array, " n m d d"], flatten: bool
) -> Union[Shaped[Array, " d n d m"], Shaped[Array, " nd md"]]:
    """Lay out per-pair blocks as a 4-dimensional tensor or a flat block matrix."""
    n, m, d, _ = blocks.shape
    if flatten:
        return blocks.transpose(0, 2, 1, 3).reshape(n * d, m * d)
    return blocks.transpose(2, 0, 3, 1)


def _as_vector(x: Union[Shaped[ArrayLike, " d"], float]) -> Shaped[Array, " d"]:
    x = jnp.atleast_1d(jnp.asarray(x))
    if not jnp.issubdtype(x.dtype, jnp.inexact):
        x = x.astype(float)
    return x


def kernel_matrix_dx(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    flatten: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Union[Shaped[Array, " d n m"], Shaped[Array, " nd m"]]:
    r"""
    Calculate the gradient of a kernel w.r.t. ``x`` for every pair of observations.

    Kernels with a cusp where a pair coincides, such as the Laplacian kernel, the
    gamma-exponential class with :math:`\gamma < 1` and the power class with
    :math:`c = 0`, have no gradient there, and the corresponding entries are NaN.

    :param function: Composite or base metric to differentiate
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param flatten: If :data:`True` return a :math:`(dn) \times m` matrix whose rows
        :math:`di, \dots, di + d - 1` belong to observation :math:`i`, otherwise a
        :math:`d \times n \times m` tensor
    :param dtype: Optional floating point type of the computation
    :return: The gradients :math:`\partial \psi(x_i, y_j) / \partial x_{i,k}`
    """
    x_points, y_points = _observations(function, x, y, transposed, dtype)
    (n, d), m = x_points.shape, y_points.shape[0]
    log_allocation("first-derivative tensor", (d, n, m))
    gradients = pairwise(function.grad_x_elementwise)(x_points, y_points)
    if flatten:
        return gradients.transpose(0, 2, 1).reshape(n * d, m)
    return gradients.transpose(2, 0, 1)


def kernel_matrix_dy(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    flatten: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Union[Shaped[Array, " d n m"], Shaped[Array, " n md"]]:
    r"""
    Calculate the gradient of a kernel w.r.t. ``y`` for every pair of observations.

    Kernels with a cusp where a pair coincides, such as the Laplacian kernel, the
    gamma-exponential class with :math:`\gamma < 1` and the power class with
    :math:`c = 0`, have no gradient there, and the corresponding entries are NaN.

    :param function: Composite or base metric to differentiate
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param flatten: If :data:`True` return an :math:`n \times (dm)` matrix whose
        columns :math:`dj, \dots, dj + d - 1` belong to observation :math:`j` of ``y``,
        otherwise a :math:`d \times n \times m` tensor
    :param dtype: Optional floating point type of the computation
    :return: The gradients :math:`\partial \psi(x_i, y_j) / \partial y_{j,k}`
    """
    x_points, y_points = _observations(function, x, y, transposed, dtype)
    (n, d), m = x_points.shape, y_points.shape[0]
    log_allocation("first-derivative tensor", (d, n, m))
    gradients = pairwise(function.grad_y_elementwise)(x_points, y_points)
    if flatten:
        return gradients.reshape(n, m * d)
    return gradients.transpose(2, 0, 1)


def kernel_matrix_dw(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Shaped[Array, " d n m"]:
    r"""
    Calculate the gradient of a kernel w.r.t. the weights of its base metric.

    A metric without weights is differentiated at :math:`w = (1, \dots, 1)`.

    :param function: Composite or base metric to differentiate
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param dtype: Optional floating point type of the computation
    :return: A :math:`d \times n \times m` tensor of weight gradients
    """
    x_points, y_points = _observations(function, x, y, transposed, dtype)
    log_allocation(
        "weight-derivative tensor",
        (x_points.shape[1], x_points.shape[0], y_points.shape[0]),
    )
    gradients = pairwise(function.grad_weights_elementwise)(x_points, y_points)
    return gradients.transpose(2, 0, 1)


def kernel_dxdy(
    function: _Differentiable,
    x: Union[Shaped[ArrayLike, " d"], float],
    y: Union[Shaped[ArrayLike, " d"], float],
) -> Shaped[Array, " d d"]:
    r"""
    Calculate the mixed second derivative of a kernel for a single pair.

    :param function: Composite, or base metric, of the scalar product or the squared
        Euclidean distance
    :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
    :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
    :return: The :math:`d \times d` matrix
        :math:`\partial^2 \psi / \partial x_k \partial y_l`
    :raises TypeError: Raised if the base metric has no closed form
    :raises DimensionMismatchError: Raised if the lengths of the operands disagree
    """
    metric, composition = _closed_form_split(function)
    return _block(metric, composition, _as_vector(x), _as_vector(y))


def write_block(
    buffer: Shaped[Array, " nd md"],
    block: Shaped[Array, " d d"],
    i: Union[int, Array],
    j: Union[int, Array],
) -> Shaped[Array, " nd md"]:
    r"""
    Write the block of pair ``(i, j)`` into a flattened second-derivative matrix.

    :param buffer: Flattened :math:`(dn) \times (dm)` matrix
    :param block: The :math:`d \times d` block to write
    :param i: Index of the observation of ``x``
    :param j: Index of the observation of ``y``
    :return: A copy of ``buffer`` with the block written; ``buffer`` is not modified
    """
    d = block.shape[0]
    return lax.dynamic_update_slice(buffer, block.astype(buffer.dtype), (i * d, j * d))


def kernel_matrix_dxdy(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    flatten: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Union[Shaped[Array, " d n d m"], Shaped[Array, " nd md"]]:
    r"""
    Calculate the mixed second derivative of a kernel for every pair of observations.

    :param function: Composite, or base metric, of the scalar product or the squared
        Euclidean distance
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param flatten: If :data:`True` return the :math:`(dn) \times (dm)` block matrix,
        otherwise a :math:`d \times n \times d \times m` tensor
    :param dtype: Optional floating point type of the computation
    :return: The mixed second derivatives
    :raises TypeError: Raised if the base metric has no closed form
    """
    metric, composition = _closed_form_split(function)
    x_points, y_points = _observations(function, x, y, transposed, dtype)
    (n, d), m = x_points.shape, y_points.shape[0]
    log_allocation("second-derivative tensor", (d, n, d, m))
    blocks = pairwise(partial(_block, metric, composition))(x_points, y_points)
    return _arrange(blocks, flatten)


def kernel_matrix_dxdy_blocks(
    function: _Differentiable,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    block_size: int = 128,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Iterator[Shaped[Array, " bd md"]]:
    r"""
    Stream the flattened mixed second-derivative matrix in blocks of rows.

    Each yielded array holds the rows of ``block_size`` consecutive observations of
    ``x`` (fewer for the last); concatenated along the first axis they equal
    ``kernel_matrix_dxdy(function, x, y, flatten=True)``.

    :param function: Composite, or base metric, of the scalar product or the squared
        Euclidean distance
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param block_size: Number of observations of ``x`` per yielded block
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param dtype: Optional floating point type of the computation
    :return: An iterator of :math:`(d \cdot block\_size) \times (dm)` arrays
    :raises TypeError: Raised if ``block_size`` is not an integer
    :raises ValueError: Raised if ``block_size`` is not positive
    """
    if isinstance(block_size, bool) or not isinstance(block_size, int):
        raise TypeError("'block_size' must be an integer")
    if block_size < 1:
        raise ValueError("'block_size' must be a positive integer")
    metric, composition = _closed_form_split(function)
    x_points, y_points = _observations(function, x, y, transposed, dtype)
    (n, d), m = x_points.shape, y_points.shape[0]
    log_allocation("second-derivative row block", (d * min(block_size, n), d * m))
    blocks_of = pairwise(partial(_block, metric, composition))

    def _stream() -> Iterator[Shaped[Array, " bd md"]]:
        for start in range(0, n, block_size):
            rows = x_points[start : start + block_size]
            yield _arrange(blocks_of(rows, y_points), flatten=True)

    return _stream()


def kernel_matrix_dxdy_diagonal(
    function: _Differentiable,
    x: _ObservationsLike,
    *,
    transposed: bool = False,
    flatten: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Union[Shaped[Array, " n d d"], Shaped[Array, " nd nd"]]:
    r"""
    Calculate only the diagonal blocks of the single-set mixed second derivative.

    :param function: Composite, or base metric, of the scalar product or the squared
        Euclidean distance
    :param x: Observation set, :math:`n` observations in :math:`d` dimensions
    :param transposed: If :data:`True`, columns rather than rows of a raw array
        argument index observations
    :param flatten: If :data:`True` return the block-diagonal :math:`(dn) \times (dn)`
        matrix, otherwise the :math:`n \times d \times d` stack of blocks
    :param dtype: Optional floating point type of the computation
    :return: The blocks :math:`\partial^2 \psi(x_i, x_i) / \partial x \partial y^T`
    """
    metric, composition = _closed_form_split(function)
    x_points = as_observations(x, transposed, dtype).points
    _check_weights(metric, x_points.shape[1])
    n, d = x_points.shape
    blocks = vmap(partial(_block, metric, composition))(x_points, x_points)
    if not flatten:
        return blocks
    log_allocation("block-diagonal second-derivative matrix", (n * d, n * d))
    return lax.fori_loop(
        0,
        n,
        lambda i, buffer: write_block(buffer, blocks[i], i, i),
        jnp.zeros((n * d, n * d), dtype=blocks.dtype),
    )


def epsilon_tensor(
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
    *,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Shaped[Array, " d d n m"]:
    r"""
    Calculate the outer products of the (weighted) differences of every pair.

    With :math:`\epsilon = w \odot (x_i - y_j)`, element ``[p, q, i, j]`` is
    :math:`\epsilon_p \epsilon_q`, so the trace of each :math:`d \times d` slice is the
    weighted squared distance of the pair.

    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param weights: Optional weight vector, which must match the weights of the metric
        the tensor is later used with
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param dtype: Optional floating point type of the computation
    :return: The :math:`d \times d \times n \times m` tensor
    """
    x_points, y_points = as_observation_pair(x, y, transposed, dtype)
    (n, d), m = x_points.shape, y_points.shape[0]
    differences = x_points[:, None, :] - y_points[None, :, :]
    if weights is not None:
        weights = jnp.atleast_1d(jnp.asarray(weights, dtype=x_points.dtype))
        validate_weights(weights.shape[0], d)
        differences = differences * weights
    log_allocation("epsilon tensor", (d, d, n, m))
    return jnp.einsum("ijp,ijq->pqij", differences, differences)


def kernel_matrix_dxdy_from_epsilons(
    function: _Differentiable,
    epsilons: Shaped[Array, " d d n m"],
    *,
    flatten: bool = False,
) -> Union[Shaped[Array, " d n d m"], Shaped[Array, " nd md"]]:
    r"""
    Calculate the mixed second derivative from a precomputed :func:`epsilon_tensor`.

    The result equals :func:`kernel_matrix_dxdy` on the observations the tensor was
    built from, provided the tensor was built with the weights of the base metric.

    :param function: Composite, or base metric, of the squared Euclidean distance
    :param epsilons: The :math:`d \times d \times n \times m` output of
        :func:`epsilon_tensor`
    :param flatten: If :data:`True` return the :math:`(dn) \times (dm)` block matrix,
        otherwise a :math:`d \times n \times d \times m` tensor
    :return: The mixed second derivatives
    :raises TypeError: Raised if the base metric is not the squared Euclidean distance
    :raises ValueError: Raised if ``epsilons`` does not have the expected shape
    """
    metric, composition = _closed_form_split(function)
    if not isinstance(metric, SquaredEuclidean):
        raise TypeError(
            "'function' must be a function of 'SquaredEuclidean' to use an epsilon "
            f"tensor, not of '{type(metric).__name__}'"
        )
    epsilons = jnp.asarray(epsilons)
    if epsilons.ndim != 4 or epsilons.shape[0] != epsilons.shape[1]:
        raise ValueError(
            f"'epsilons' must have shape (d, d, n, m); got {epsilons.shape}"
        )
    d, _, n, m = epsilons.shape
    _check_weights(metric, d)
    weights = (
        jnp.ones(d, dtype=epsilons.dtype)
        if metric.weights is None
        else metric.weights.astype(epsilons.dtype)
    )
    log_allocation("second-derivative tensor", (d, n, d, m))
    first, second = _coefficients(composition, jnp.einsum("ppij->ij", epsilons))
    tensor = -4 * jnp.einsum("ij,p,q,pqij->piqj", second, weights, weights, epsilons)
    tensor = tensor - 2 * jnp.einsum(
        "ij,p,pq->piqj", first, weights**2, jnp.eye(d, dtype=epsilons.dtype)
    )
    if flatten:
        return tensor.transpose(1, 0, 3, 2).reshape(n * d, m * d)
    return tensor


def _hyperparameter_derivative(
    composition: CompositionClass, name: str, z: Shaped[Array, " n m"]
) -> Shaped[Array, " n m"]:
    def value_at(parameter):
        return eqx.tree_at(lambda c: getattr(c, name), composition, parameter).value(z)

    primal = jnp.asarray(getattr(composition, name), dtype=z.dtype)
    _, tangent = jax.jvp(value_at, (primal,), (jnp.ones_like(primal),))
    return tangent


def kernel_matrix_dtheta(
    function: CompositeFunction,
    x: _ObservationsLike,
    y: Optional[_ObservationsLike] = None,
    *,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> dict[str, Shaped[Array, " n m"]]:
    r"""
    Calculate the derivative of a kernel matrix w.r.t. each continuous hyperparameter.

    Derivatives are computed by forward-mode differentiation of the value of the
    composition class. Integer hyperparameters and the order of the Matérn class are
    not differentiable and are omitted.

    :param function: Composite function
    :param x: First observation set, :math:`n` observations in :math:`d` dimensions
    :param y: Second observation set, :math:`m` observations; :data:`None` means ``x``
    :param transposed: If :data:`True`, columns rather than rows of raw array arguments
        index observations
    :param dtype: Optional floating point type of the computation
    :return: Mapping from hyperparameter name to the :math:`n \times m` matrix
        :math:`\partial \psi(x_i, y_j) / \partial \theta`
    """
    validate_is_instance(function, "function", CompositeFunction)
    z = function.metric.matrix(x, y, transposed=transposed, dtype=dtype)
    composition = function.composition
    return {
        name: _hyperparameter_derivative(composition, name, z)
        for name in composition.hyperparameters
        if name not in composition.nondifferentiable
    }
