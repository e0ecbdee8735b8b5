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
Base pairwise metrics: the scalar product and the squared Euclidean distance.

Both metrics come in an unweighted and a weighted form. A weight vector
:math:`w \in \mathbb{R}^d_{\geq 0}` induces the diagonal metric :math:`D = diag(w^2)`,

.. math::

    \langle x, y \rangle_w = \sum_i w_i^2 x_i y_i, \qquad
    \|x - y\|_w^2 = \sum_i w_i^2 (x_i - y_i)^2,

which is equivalent to rescaling every dimension by its weight before applying the
unweighted metric. The first-derivative identities of the two metrics, used by
:mod:`gramax.kernels.derivatives`, are exposed alongside the metrics themselves.
"""

from abc import abstractmethod
from typing import ClassVar, Optional, Union

import equinox as eqx
import jax.numpy as jnp
from jax import Array, lax
from jax.typing import ArrayLike, DTypeLike
from jaxtyping import Shaped
from typing_extensions import override

from gramax.data import Observations
from gramax.kernels import gram
from gramax.kernels.base import AlgebraicProperties, PairwiseFunction
from gramax.util import DimensionMismatchError

_Vector = Union[Shaped[Array, " d"], Shaped[Array, ""], float, int]


def _as_operands(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> tuple[Array, Array, Optional[Array]]:
    """Cast the operands to vectors and check that their lengths agree."""
    x = jnp.atleast_1d(x)
    y = jnp.atleast_1d(y)
    if x.shape != y.shape:
        raise DimensionMismatchError(
            f"'x' and 'y' must have the same shape; got {x.shape} and {y.shape}"
        )
    if weights is not None:
        weights = jnp.atleast_1d(weights)
        if weights.shape != x.shape:
            raise DimensionMismatchError(
                f"'weights' must have the same shape as 'x' and 'y'; got "
                f"{weights.shape} and {x.shape}"
            )
    return x, y, weights


def scalar_product(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, ""]:
    r"""
    Calculate the (weighted) scalar product of two vectors.

    :param x: First vector argument
    :param y: Second vector argument
    :param weights: Optional weight vector :math:`w`
    :return: :math:`\sum_i x_i y_i`, or :math:`\sum_i x_i y_i w_i^2` if weighted
    :raises DimensionMismatchError: Raised if the operand lengths differ
    """
    x, y, weights = _as_operands(x, y, weights)
    if weights is None:
        return jnp.dot(x, y)
    return jnp.sum(x * y * weights**2)


def squared_distance(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, ""]:
    r"""
    Calculate the (weighted) squared Euclidean distance between two vectors.

    :param x: First vector argument
    :param y: Second vector argument
    :param weights: Optional weight vector :math:`w`
    :return: :math:`\sum_i (x_i - y_i)^2`, or :math:`\sum_i w_i^2 (x_i - y_i)^2` if
        weighted
    :raises DimensionMismatchError: Raised if the operand lengths differ
    """
    x, y, weights = _as_operands(x, y, weights)
    difference = x - y if weights is None else (x - y) * weights
    return jnp.dot(difference, difference)


def scalar_product_grad_x(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the scalar product w.r.t. ``x``, i.e. ``y * w**2``."""
    x, y, weights = _as_operands(x, y, weights)
    return y if weights is None else y * weights**2


def scalar_product_grad_y(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the scalar product w.r.t. ``y``, i.e. ``x * w**2``."""
    return scalar_product_grad_x(y, x, weights)


def scalar_product_grad_weights(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the scalar product w.r.t. the weights, ``2 x y w``."""
    x, y, weights = _as_operands(x, y, weights)
    return 2 * x * y if weights is None else 2 * x * y * weights


def squared_distance_grad_x(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the squared distance w.r.t. ``x``, ``2 w**2 (x - y)``."""
    x, y, weights = _as_operands(x, y, weights)
    return 2 * (x - y) if weights is None else 2 * (x - y) * weights**2


def squared_distance_grad_y(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the squared distance w.r.t. ``y``, ``2 w**2 (y - x)``."""
    return squared_distance_grad_x(y, x, weights)


def squared_distance_grad_weights(
    x: _Vector, y: _Vector, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> Shaped[Array, " d"]:
    """Return the gradient of the squared distance w.r.t. weights, ``2 (x-y)**2 w``."""
    x, y, weights = _as_operands(x, y, weights)
    return 2 * (x - y) ** 2 if weights is None else 2 * (x - y) ** 2 * weights


def _indexed_operands(
    x: Shaped[Array, " a b"],
    x_index: int,
    y: Shaped[Array, " c e"],
    y_index: int,
    transposed: bool,
) -> tuple[Array, Array]:
    """Select one observation from each of two observation matrices."""
    axis = 1 if transposed else 0
    return (
        lax.dynamic_index_in_dim(x, x_index, axis, keepdims=False),
        lax.dynamic_index_in_dim(y, y_index, axis, keepdims=False),
    )


def scalar_product_indexed(
    x: Shaped[Array, " a b"],
    x_index: int,
    y: Shaped[Array, " c e"],
    y_index: int,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
    transposed: bool = False,
) -> Shaped[Array, ""]:
    """
    Calculate the scalar product of one observation of ``x`` and one of ``y``.

    :param x: First observation matrix
    :param x_index: Index of the observation of ``x``
    :param y: Second observation matrix
    :param y_index: Index of the observation of ``y``
    :param weights: Optional weight vector
    :param transposed: If :data:`True` columns, otherwise rows, index observations
    :return: The (weighted) scalar product of the two observations
    """
    return scalar_product(
        *_indexed_operands(x, x_index, y, y_index, transposed), weights
    )


def squared_distance_indexed(
    x: Shaped[Array, " a b"],
    x_index: int,
    y: Shaped[Array, " c e"],
    y_index: int,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
    transposed: bool = False,
) -> Shaped[Array, ""]:
    """
    Calculate the squared distance between observation ``x_index`` and ``y_index``.

    :param x: First observation matrix
    :param x_index: Index of the observation of ``x``
    :param y: Second observation matrix
    :param y_index: Index of the observation of ``y``
    :param weights: Optional weight vector
    :param transposed: If :data:`True` columns, otherwise rows, index observations
    :return: The (weighted) squared distance between the two observations
    """
    return squared_distance(
        *_indexed_operands(x, x_index, y, y_index, transposed), weights
    )


def _as_weights(weights: Optional[Shaped[ArrayLike, " d"]]) -> Optional[Array]:
    """Cast weights to a vector, leaving :data:`None` (the identity metric) alone."""
    if weights is None:
        return None
    return jnp.atleast_1d(jnp.asarray(weights, dtype=float))


class PairwiseMetric(PairwiseFunction):
    r"""
    Abstract base class for the base pairwise metrics.

    :param weights: Optional non-negative weight vector :math:`w \in \mathbb{R}^d`
        inducing the diagonal metric :math:`diag(w^2)`; :data:`None` gives the identity
        metric
    """

    weights: Optional[Shaped[Array, " d"]] = eqx.field(
        default=None, converter=_as_weights
    )

    def __check_init__(self):
        """Check that the weights are a non-negative vector."""
        if self.weights is not None:
            if self.weights.ndim != 1:
                raise ValueError("'weights' must be a vector")
            if jnp.any(self.weights < 0):
                raise ValueError("'weights' must be non-negative")

    @abstractmethod
    def grad_weights_elementwise(self, x: _Vector, y: _Vector) -> Shaped[Array, " d"]:
        r"""
        Evaluate the element-wise gradient of the metric w.r.t. the weights.

        An unweighted metric is differentiated at :math:`w = (1, \dots, 1)`.

        :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
        :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
        :return: Gradient w.r.t. :math:`w`, a :math:`d`-vector
        """


class ScalarProduct(PairwiseMetric):
    r"""
    Define the (weighted) scalar product :math:`f(x, y) = \sum_i w_i^2 x_i y_i`.

    The scalar product is a Mercer kernel and an inner product, and takes every sign.

    :param weights: Optional non-negative weight vector
    """

    properties: ClassVar[AlgebraicProperties] = AlgebraicProperties(
        is_mercer=True, is_inner_product=True
    )

    @override
    def compute_elementwise(self, x, y):
        return scalar_product(x, y, self.weights)

    @override
    def grad_x_elementwise(self, x, y):
        return scalar_product_grad_x(x, y, self.weights)

    @override
    def grad_y_elementwise(self, x, y):
        return scalar_product_grad_y(x, y, self.weights)

    @override
    def grad_weights_elementwise(self, x, y):
        return scalar_product_grad_weights(x, y, self.weights)

    @override
    def matrix(
        self,
        x: Union[Shaped[ArrayLike, " n d"], Observations],
        y: Union[Shaped[ArrayLike, " m d"], Observations, None] = None,
        *,
        transposed: bool = False,
        dtype: Optional[DTypeLike] = None,
    ) -> Shaped[Array, " n m"]:
        return gram.scalar_product_matrix(
            x, y, self.weights, transposed=transposed, dtype=dtype
        )


class SquaredEuclidean(PairwiseMetric):
    r"""
    Define the (weighted) squared Euclidean distance.

    :math:`f(x, y) = \sum_i w_i^2 (x_i - y_i)^2` is negative-definite and non-negative,
    attaining zero when :math:`x = y`; it is not a metric, since the triangle inequality
    fails for squared distances.

    :param weights: Optional non-negative weight vector
    """

    properties: ClassVar[AlgebraicProperties] = AlgebraicProperties(
        is_negative_definite=True, attains_negative=False
    )

    @override
    def compute_elementwise(self, x, y):
        return squared_distance(x, y, self.weights)

    @override
    def grad_x_elementwise(self, x, y):
        return squared_distance_grad_x(x, y, self.weights)

    @override
    def grad_y_elementwise(self, x, y):
        return squared_distance_grad_y(x, y, self.weights)

    @override
    def grad_weights_elementwise(self, x, y):
        return squared_distance_grad_weights(x, y, self.weights)

    @override
    def matrix(
        self,
        x: Union[Shaped[ArrayLike, " n d"], Observations],
        y: Union[Shaped[ArrayLike, " m d"], Observations, None] = None,
        *,
        transposed: bool = False,
        dtype: Optional[DTypeLike] = None,
    ) -> Shaped[Array, " n m"]:
        return gram.squared_distance_matrix(
            x, y, self.weights, transposed=transposed, dtype=dtype
        )
