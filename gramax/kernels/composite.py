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
Kernels built by composing a scalar transform with a base pairwise metric.

A :class:`CompositeFunction` binds a
:class:`~gramax.kernels.composition.CompositionClass` :math:`g` to a
:class:`~gramax.kernels.pairwise.PairwiseMetric` :math:`f`, defining
:math:`\psi(x, y) = g(f(x, y))`. The binding is checked once, on construction, and
inherits the algebraic properties declared by :math:`g`.

The named constructors at the bottom of this module build the familiar kernels as
instances of this pattern, for example

.. code-block:: python

    gaussian_kernel(alpha) == compose_with(ExponentialClass(alpha), SquaredEuclidean())
"""

from typing import Optional, Union

from jax.typing import ArrayLike
from jaxtyping import Shaped
from typing_extensions import Self, override

from gramax.kernels.base import AlgebraicProperties, PairwiseFunction
from gramax.kernels.composition import (
    CompositionClass,
    ExponentialClass,
    ExponentiatedClass,
    GammaExponentialClass,
    MaternClass,
    PolynomialClass,
    PowerClass,
    RationalClass,
    SigmoidClass,
)
from gramax.kernels.pairwise import PairwiseMetric, ScalarProduct, SquaredEuclidean
from gramax.util import NotComposableError
from gramax.validation import validate_is_instance


class CompositeFunction(PairwiseFunction):
    r"""
    Define the composite :math:`\psi(x, y) = g(f(x, y))`.

    :param composition: Scalar transform, :math:`g`
    :param metric: Base pairwise metric, :math:`f`
    :raises TypeError: Raised if the arguments have the wrong types
    :raises NotComposableError: Raised if ``metric`` does not satisfy the requirement
        of ``composition``
    """

    composition: CompositionClass
    metric: PairwiseMetric

    def __check_init__(self):
        """Ensure the composition class may be applied to the metric."""
        validate_is_instance(self.composition, "composition", CompositionClass)
        validate_is_instance(self.metric, "metric", PairwiseMetric)
        if not self.composition.is_composable_with(self.metric.properties):
            raise NotComposableError(
                f"{type(self.composition).__name__} requires a "
                f"{self.composition.requirement.value} base function, which "
                f"{type(self.metric).__name__} is not"
            )

    @property
    @override
    def properties(self) -> AlgebraicProperties:
        return self.composition.properties

    def with_hyperparameters(self, **values: Union[float, int]) -> Self:
        """Return a new composite with some hyperparameters of the class replaced."""
        return type(self)(self.composition.with_hyperparameters(**values), self.metric)

    @override
    def compute_elementwise(self, x, y):
        return self.composition.value(self.metric.compute_elementwise(x, y))

    @override
    def grad_x_elementwise(self, x, y):
        z = self.metric.compute_elementwise(x, y)
        return self.composition.d_value(z) * self.metric.grad_x_elementwise(x, y)

    @override
    def grad_y_elementwise(self, x, y):
        z = self.metric.compute_elementwise(x, y)
        return self.composition.d_value(z) * self.metric.grad_y_elementwise(x, y)

    def grad_weights_elementwise(self, x, y):
        r"""
        Evaluate the element-wise gradient of the composite w.r.t. the metric weights.

        :param x: Vector :math:`\mathbf{x} \in \mathbb{R}^d`
        :param y: Vector :math:`\mathbf{y} \in \mathbb{R}^d`
        :return: :math:`g'(f(x, y)) \nabla_w f(x, y)`
        """
        z = self.metric.compute_elementwise(x, y)
        return self.composition.d_value(z) * self.metric.grad_weights_elementwise(x, y)

    @override
    def matrix(self, x, y=None, *, transposed=False, dtype=None):
        return self.composition.value(
            self.metric.matrix(x, y, transposed=transposed, dtype=dtype)
        )


def compose_with(
    composition: CompositionClass, metric: PairwiseMetric
) -> CompositeFunction:
    """Return the composite of ``composition`` applied to ``metric``."""
    return CompositeFunction(composition, metric)


def raise_to_power(
    metric: PairwiseMetric, exponent: Union[int, float]
) -> CompositeFunction:
    r"""
    Raise a base metric to a power.

    An integer exponent gives :math:`f^d` through the polynomial class, which requires a
    Mercer base; a float exponent gives :math:`f^\gamma` through the power class, which
    requires a non-negative negative-definite base and :math:`\gamma \in (0, 1]`.

    :param metric: Base pairwise metric
    :param exponent: Integer degree or float exponent
    :return: The composite :math:`f^{exponent}`
    """
    if isinstance(exponent, int) and not isinstance(exponent, bool):
        return CompositeFunction(PolynomialClass(1.0, 0.0, exponent), metric)
    return CompositeFunction(PowerClass(1.0, 0.0, exponent), metric)


def exponentiate(metric: PairwiseMetric) -> CompositeFunction:
    r"""Return :math:`\exp(f)` for a Mercer base metric :math:`f`."""
    return CompositeFunction(ExponentiatedClass(1.0, 0.0), metric)


def apply_tanh(metric: PairwiseMetric) -> CompositeFunction:
    r"""Return :math:`\tanh(f)` for a Mercer base metric :math:`f`."""
    return CompositeFunction(SigmoidClass(1.0, 0.0), metric)


def gaussian_kernel(
    alpha: float = 1.0, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> CompositeFunction:
    r"""Return the Gaussian kernel, :math:`\exp(-\alpha \|x - y\|^2)`."""
    return CompositeFunction(ExponentialClass(alpha), SquaredEuclidean(weights))


def laplacian_kernel(
    alpha: float = 1.0, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> CompositeFunction:
    r"""Return the Laplacian kernel, :math:`\exp(-\alpha \|x - y\|)`."""
    return CompositeFunction(
        GammaExponentialClass(alpha, 0.5), SquaredEuclidean(weights)
    )


def rational_quadratic_kernel(
    alpha: float = 1.0,
    beta: float = 1.0,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
) -> CompositeFunction:
    r"""
    Return the rational quadratic kernel.

    :math:`k(x, y) = (1 + \alpha \|x - y\|^2)^{-\beta}`.
    """
    return CompositeFunction(RationalClass(alpha, beta), SquaredEuclidean(weights))


def matern_kernel(
    nu: float = 1.0, rho: float = 1.0, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> CompositeFunction:
    """Return the Matérn kernel of order ``nu`` and scale ``rho``."""
    return CompositeFunction(MaternClass(nu, rho), SquaredEuclidean(weights))


def polynomial_kernel(
    a: float = 1.0,
    c: float = 1.0,
    degree: int = 3,
    weights: Optional[Shaped[ArrayLike, " d"]] = None,
) -> CompositeFunction:
    r"""Return the polynomial kernel, :math:`(a x^T y + c)^d`."""
    return CompositeFunction(PolynomialClass(a, c, degree), ScalarProduct(weights))


def linear_kernel(
    a: float = 1.0, c: float = 1.0, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> CompositeFunction:
    r"""Return the linear kernel, :math:`a x^T y + c`."""
    return CompositeFunction(PolynomialClass(a, c, 1), ScalarProduct(weights))


def sigmoid_kernel(
    a: float = 1.0, c: float = 1.0, weights: Optional[Shaped[ArrayLike, " d"]] = None
) -> CompositeFunction:
    r"""Return the sigmoid kernel, :math:`\tanh(a x^T y + c)`."""
    return CompositeFunction(SigmoidClass(a, c), ScalarProduct(weights))
