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
Classes and associated functionality to use pairwise real-valued functions.

A pairwise function :math:`f:\mathbb{R}^d \times \mathbb{R}^d \to \mathbb{R}` takes two
observations, ``x`` and ``y``, and returns a real number. Kernels are built in this
library by applying a scalar transform (a
:class:`~gramax.kernels.composition.CompositionClass`) to one of two base pairwise
metrics, the scalar product and the squared Euclidean distance.

Whether a transform may be applied to a base function is decided by the algebraic
properties of the base function, which each function declares as an
:class:`AlgebraicProperties` record. For example, :math:`\exp(-\alpha z)` yields a
positive-definite kernel when :math:`z` is a non-negative, negative-definite function
such as the squared Euclidean distance, but not when :math:`z` is a scalar product.

A :class:`PairwiseFunction` must implement
:meth:`~PairwiseFunction.compute_elementwise`, which evaluates the function on two
vectors, and :meth:`~PairwiseFunction.matrix`, which evaluates it on every pair of two
observation sets. The element-wise gradients default to automatic differentiation and
are overridden by closed forms wherever one is available.
"""

from abc import abstractmethod
from typing import NamedTuple, Optional, Union

import equinox as eqx
from jax import Array, grad
from jax.typing import ArrayLike, DTypeLike
from jaxtyping import Shaped

from gramax.data import Observations
from gramax.util import pairwise


class AlgebraicProperties(NamedTuple):
    """
    Declared algebraic facts about a pairwise function or a composition class.

    :param is_mercer: The function is a positive-definite (Mercer) kernel
    :param is_negative_definite: The function is conditionally negative-definite
    :param is_metric: The function is a metric
    :param is_inner_product: The function is an inner product
    :param attains_zero: The function can take the value zero
    :param attains_positive: The function can take positive values
    :param attains_negative: The function can take negative values
    """

    is_mercer: bool = False
    is_negative_definite: bool = False
    is_metric: bool = False
    is_inner_product: bool = False
    attains_zero: bool = True
    attains_positive: bool = True
    attains_negative: bool = True

    @property
    def is_nonnegative(self) -> bool:
        """Return :data:`True` if the function never takes negative values."""
        return not self.attains_negative


class PairwiseFunction(eqx.Module):
    """Abstract base class for real-valued functions of a pair of observations."""

    @property
    @abstractmethod
    def properties(self) -> AlgebraicProperties:
        """Return the declared algebraic properties of the function."""

    @abstractmethod
    def compute_elementwise(
        self,
        x: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
        y: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
    ) -> Shaped[Array, ""]:
        r"""
        Evaluate the function on individual input vectors ``x`` and ``y``.

        :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
        :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
        :return: Function evaluated at (``x``, ``y``)
        """

    @abstractmethod
    def matrix(
        self,
        x: Union[Shaped[ArrayLike, " n d"], Observations],
        y: Union[Shaped[ArrayLike, " m d"], Observations, None] = None,
        *,
        transposed: bool = False,
        dtype: Optional[DTypeLike] = None,
    ) -> Shaped[Array, " n m"]:
        r"""
        Evaluate the function on every pair of observations of ``x`` and ``y``.

        :param x: First observation set, :math:`n` observations
        :param y: Second observation set, :math:`m` observations; :data:`None` computes
            the symmetric matrix of ``x`` with itself
        :param transposed: If :data:`True`, columns rather than rows of raw array
            arguments index observations
        :param dtype: Optional floating point type of the computation
        :return: The :math:`n \times m` matrix of evaluations
        """

    def compute(
        self,
        x: Union[Shaped[Array, " n d"], Shaped[Array, " d"], float, int],
        y: Union[Shaped[Array, " m d"], Shaped[Array, " d"], float, int],
    ) -> Shaped[Array, " n m"]:
        r"""
        Evaluate the function on all pairs of rows of ``x`` and ``y``, pair by pair.

        Unlike :meth:`matrix`, no algebraic shortcut is taken, which makes this method
        the reference against which the matrix routines are checked.

        :param x: An :math:`n \times d` array or a single vector
        :param y: An :math:`m \times d` array or a single vector
        :return: The :math:`n \times m` array of evaluations
        """
        return pairwise(self.compute_elementwise)(x, y)

    def __call__(
        self,
        x: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
        y: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
    ) -> Shaped[Array, ""]:
        """Evaluate the function on a single pair, alias of `compute_elementwise`."""
        return self.compute_elementwise(x, y)

    def grad_x_elementwise(
        self,
        x: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
        y: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
    ) -> Shaped[Array, " d"]:
        r"""
        Evaluate the element-wise gradient of the function w.r.t. ``x``.

        :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
        :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
        :return: Jacobian :math:`\nabla_\mathbf{x} f(\mathbf{x}, \mathbf{y})`
        """
        return grad(self.compute_elementwise, 0)(x, y)

    def grad_y_elementwise(
        self,
        x: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
        y: Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
    ) -> Shaped[Array, " d"]:
        r"""
        Evaluate the element-wise gradient of the function w.r.t. ``y``.

        :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
        :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
        :return: Jacobian :math:`\nabla_\mathbf{y} f(\mathbf{x}, \mathbf{y})`
        """
        return grad(self.compute_elementwise, 1)(x, y)
