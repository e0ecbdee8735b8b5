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
Scalar transforms that turn a base pairwise metric into a kernel.

A composition class is a function :math:`g: \mathbb{R} \to \mathbb{R}` with named
hyperparameters. Applied to a base pairwise function :math:`f`, it defines the composite
:math:`\psi(x, y) = g(f(x, y))`. Only certain pairings yield a valid kernel: the
exponential class gives a Mercer kernel when :math:`f` is non-negative and
negative-definite (the squared Euclidean distance), while the polynomial class needs a
Mercer base (the scalar product). Each class therefore declares a
:class:`Requirement` on the properties of the base function, and the
:class:`~gramax.kernels.base.AlgebraicProperties` of the resulting composite.

Every class exposes its value and its first and second derivatives in :math:`z`, which
the derivative routines of :mod:`gramax.kernels.derivatives` combine with the
derivative identities of the base metrics via the chain rule.

Hyperparameters are validated against their declared
:class:`~gramax.validation.Interval` on construction; values outside of their domain
raise :class:`~gramax.util.InvalidHyperparameterError` and are never clamped.
"""

import dataclasses
from abc import abstractmethod
from enum import Enum
from typing import ClassVar, Union

import equinox as eqx
import jax.numpy as jnp
from jax import Array
from jax.scipy.special import gammaln
from jaxtyping import Shaped
from typing_extensions import Self, override

from gramax.kernels.base import AlgebraicProperties
from gramax.special import kv
from gramax.validation import Interval, left_bounded, unit_interval

_Scalar = Union[Shaped[Array, " *shape"], float, int]

_POSITIVE = left_bounded(0.0)
_NON_NEGATIVE = left_bounded(0.0, closed=True)

_POSITIVE_MERCER = AlgebraicProperties(
    is_mercer=True, attains_zero=False, attains_negative=False
)
_NON_NEGATIVE_NEGATIVE_DEFINITE = AlgebraicProperties(
    is_negative_definite=True, attains_negative=False
)


def _power_terms(z: _Scalar, scale: float, exponent: float) -> tuple[Array, ...]:
    r"""Return :math:`h = s z^\gamma` and its first two derivatives in :math:`z`."""
    z = jnp.asarray(z)
    h = scale * z**exponent
    h_d = scale * exponent * z ** (exponent - 1)
    # z ** (exponent - 2) is infinite at zero, where a linear h has zero curvature.
    h_d2 = jnp.where(
        exponent == 1, 0.0, scale * exponent * (exponent - 1) * z ** (exponent - 2)
    )
    return h, h_d, h_d2


class Requirement(Enum):
    """Condition that a base function must satisfy to be composed with a class."""

    MERCER = "Mercer"
    NEGATIVE_DEFINITE_NON_NEGATIVE = "negative-definite and non-negative"

    def is_satisfied_by(self, properties: AlgebraicProperties) -> bool:
        """Return :data:`True` if ``properties`` meet the requirement."""
        if self is Requirement.MERCER:
            return properties.is_mercer
        return properties.is_negative_definite and properties.is_nonnegative


class CompositionClass(eqx.Module):
    r"""
    Abstract base class for scalar transforms :math:`g(z)` of a base pairwise function.

    Subclasses declare their ``properties``, their ``requirement`` on the base function
    and the ``domains`` of their hyperparameters, whose names must match the fields of
    the subclass.
    """

    properties: ClassVar[AlgebraicProperties] = AlgebraicProperties()
    requirement: ClassVar[Requirement]
    domains: ClassVar[dict[str, Interval]] = {}
    nondifferentiable: ClassVar[tuple[str, ...]] = ()

    def __check_init__(self):
        """Check every hyperparameter lies in its domain."""
        for name, domain in self.domains.items():
            domain.validate(getattr(self, name), name)

    def is_composable_with(self, properties: AlgebraicProperties) -> bool:
        """Return :data:`True` if a base with ``properties`` can be composed."""
        return self.requirement.is_satisfied_by(properties)

    @property
    def hyperparameters(self) -> dict[str, Union[float, int]]:
        """Return a mapping from hyperparameter name to its current value."""
        return {name: getattr(self, name) for name in self.domains}

    def with_hyperparameters(self, **values: Union[float, int]) -> Self:
        """
        Return a new, validated instance with some hyperparameters replaced.

        :param values: New hyperparameter values, by name
        :return: A copy of this instance with the given values
        :raises TypeError: Raised if a name is not a hyperparameter of the class
        :raises InvalidHyperparameterError: Raised if a value lies outside its domain
        """
        unknown = set(values) - set(self.domains)
        if unknown:
            raise TypeError(
                f"{type(self).__name__} has no hyperparameters {sorted(unknown)}"
            )
        return dataclasses.replace(self, **values)

    @abstractmethod
    def value(self, z: _Scalar) -> Array:
        """Evaluate :math:`g(z)`."""

    @abstractmethod
    def d_value(self, z: _Scalar) -> Array:
        r"""Evaluate the first derivative :math:`\partial g / \partial z`."""

    @abstractmethod
    def d2_value(self, z: _Scalar) -> Array:
        r"""Evaluate the second derivative :math:`\partial^2 g / \partial z^2`."""


class ExponentialClass(CompositionClass):
    r"""
    Define the exponential class, :math:`g(z) = \exp(-\alpha z)`.

    Composed with the squared Euclidean distance this is the Gaussian kernel.

    :param alpha: Scale, must be positive
    """

    alpha: float = eqx.field(default=1.0, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {"alpha": _POSITIVE}

    @override
    def value(self, z):
        return jnp.exp(-self.alpha * jnp.asarray(z))

    @override
    def d_value(self, z):
        return -self.alpha * self.value(z)

    @override
    def d2_value(self, z):
        return self.alpha**2 * self.value(z)


class GammaExponentialClass(CompositionClass):
    r"""
    Define the gamma-exponential class, :math:`g(z) = \exp(-\alpha z^\gamma)`.

    :param alpha: Scale, must be positive
    :param gamma: Exponent, must lie in :math:`(0, 1]`
    """

    alpha: float = eqx.field(default=1.0, converter=float)
    gamma: float = eqx.field(default=0.5, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {
        "alpha": _POSITIVE,
        "gamma": unit_interval(),
    }

    @override
    def value(self, z):
        return jnp.exp(-self.alpha * jnp.asarray(z) ** self.gamma)

    @override
    def d_value(self, z):
        h, h_d, _ = _power_terms(z, self.alpha, self.gamma)
        return -h_d * jnp.exp(-h)

    @override
    def d2_value(self, z):
        h, h_d, h_d2 = _power_terms(z, self.alpha, self.gamma)
        return (h_d**2 - h_d2) * jnp.exp(-h)


class RationalClass(CompositionClass):
    r"""
    Define the rational class, :math:`g(z) = (1 + \alpha z)^{-\beta}`.

    Composed with the squared Euclidean distance this is the rational quadratic kernel.

    :param alpha: Scale, must be positive
    :param beta: Exponent, must be positive
    """

    alpha: float = eqx.field(default=1.0, converter=float)
    beta: float = eqx.field(default=1.0, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {"alpha": _POSITIVE, "beta": _POSITIVE}

    @override
    def value(self, z):
        return (1 + self.alpha * jnp.asarray(z)) ** -self.beta

    @override
    def d_value(self, z):
        base = 1 + self.alpha * jnp.asarray(z)
        return -self.alpha * self.beta * base ** (-self.beta - 1)

    @override
    def d2_value(self, z):
        base = 1 + self.alpha * jnp.asarray(z)
        return self.alpha**2 * self.beta * (self.beta + 1) * base ** (-self.beta - 2)


class GammaRationalClass(CompositionClass):
    r"""
    Define the gamma-rational class, :math:`g(z) = (1 + \alpha z^\gamma)^{-\beta}`.

    :param alpha: Scale, must be positive
    :param beta: Outer exponent, must be positive
    :param gamma: Inner exponent, must lie in :math:`(0, 1]`
    """

    alpha: float = eqx.field(default=1.0, converter=float)
    beta: float = eqx.field(default=1.0, converter=float)
    gamma: float = eqx.field(default=0.5, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {
        "alpha": _POSITIVE,
        "beta": _POSITIVE,
        "gamma": unit_interval(),
    }

    @override
    def value(self, z):
        return (1 + self.alpha * jnp.asarray(z) ** self.gamma) ** -self.beta

    @override
    def d_value(self, z):
        h, h_d, _ = _power_terms(z, self.alpha, self.gamma)
        return -self.beta * (1 + h) ** (-self.beta - 1) * h_d

    @override
    def d2_value(self, z):
        h, h_d, h_d2 = _power_terms(z, self.alpha, self.gamma)
        curvature = self.beta * (self.beta + 1) * (1 + h) ** (-self.beta - 2) * h_d**2
        return curvature - self.beta * (1 + h) ** (-self.beta - 1) * h_d2


class MaternClass(CompositionClass):
    r"""
    Define the Matérn class.

    With :math:`u = \sqrt{2\nu} z / \rho`,

    .. math::

        g(z) = \frac{2^{1-\nu}}{\Gamma(\nu)} u^\nu K_\nu(u),

    where :math:`K_\nu` is the modified Bessel function of the second kind. The function
    has a removable singularity at :math:`u = 0`, so :math:`u` is clamped below to the
    machine epsilon of its floating point type. The order :math:`\nu` is not
    differentiable.

    :param nu: Order, :math:`\nu`, must be positive
    :param rho: Scale, :math:`\rho`, must be positive
    """

    nu: float = eqx.field(default=1.0, converter=float)
    rho: float = eqx.field(default=1.0, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {"nu": _POSITIVE, "rho": _POSITIVE}
    nondifferentiable: ClassVar[tuple[str, ...]] = ("nu",)

    def _scale(self) -> Array:
        return jnp.sqrt(2 * self.nu) / self.rho

    def _normaliser(self) -> Array:
        return jnp.exp((1 - self.nu) * jnp.log(2.0) - gammaln(self.nu))

    def _argument(self, z: _Scalar) -> Array:
        z = jnp.asarray(z)
        if not jnp.issubdtype(z.dtype, jnp.inexact):
            z = z.astype(float)
        u = self._scale() * z
        return jnp.maximum(u, jnp.finfo(u.dtype).eps)

    @override
    def value(self, z):
        u = self._argument(z)
        return self._normaliser() * u**self.nu * kv(self.nu, u)

    @override
    def d_value(self, z):
        u = self._argument(z)
        return -self._normaliser() * self._scale() * u**self.nu * kv(self.nu - 1, u)

    @override
    def d2_value(self, z):
        u = self._argument(z)
        return (
            self._normaliser()
            * self._scale() ** 2
            * (
                u**self.nu * kv(self.nu - 2, u)
                - u ** (self.nu - 1) * kv(self.nu - 1, u)
            )
        )


class ExponentiatedClass(CompositionClass):
    r"""
    Define the exponentiated class, :math:`g(z) = \exp(a z + c)`.

    :param a: Scale, must be positive
    :param c: Offset, must be non-negative
    """

    a: float = eqx.field(default=1.0, converter=float)
    c: float = eqx.field(default=0.0, converter=float)

    properties: ClassVar[AlgebraicProperties] = _POSITIVE_MERCER
    requirement: ClassVar[Requirement] = Requirement.MERCER
    domains: ClassVar[dict[str, Interval]] = {"a": _POSITIVE, "c": _NON_NEGATIVE}

    @override
    def value(self, z):
        return jnp.exp(self.a * jnp.asarray(z) + self.c)

    @override
    def d_value(self, z):
        return self.a * self.value(z)

    @override
    def d2_value(self, z):
        return self.a**2 * self.value(z)


class PolynomialClass(CompositionClass):
    r"""
    Define the polynomial class, :math:`g(z) = (a z + c)^d`.

    :param a: Scale, must be positive
    :param c: Offset, must be non-negative
    :param degree: Degree, :math:`d`, must be a positive integer
    """

    a: float = eqx.field(default=1.0, converter=float)
    c: float = eqx.field(default=0.0, converter=float)
    degree: int = 3

    properties: ClassVar[AlgebraicProperties] = AlgebraicProperties(is_mercer=True)
    requirement: ClassVar[Requirement] = Requirement.MERCER
    domains: ClassVar[dict[str, Interval]] = {
        "a": _POSITIVE,
        "c": _NON_NEGATIVE,
        "degree": left_bounded(1, closed=True, integer=True),
    }
    nondifferentiable: ClassVar[tuple[str, ...]] = ("degree",)

    @override
    def value(self, z):
        return (self.a * jnp.asarray(z) + self.c) ** self.degree

    @override
    def d_value(self, z):
        z = jnp.asarray(z)
        if self.degree == 1:
            return jnp.full_like(z, self.a, dtype=jnp.result_type(z, float))
        return self.a * self.degree * (self.a * z + self.c) ** (self.degree - 1)

    @override
    def d2_value(self, z):
        z = jnp.asarray(z)
        if self.degree == 1:
            return jnp.zeros_like(z, dtype=jnp.result_type(z, float))
        return (
            self.a**2
            * self.degree
            * (self.degree - 1)
            * (self.a * z + self.c) ** (self.degree - 2)
        )


class PowerClass(CompositionClass):
    r"""
    Define the power class, :math:`g(z) = (a z + c)^\gamma`.

    :param a: Scale, must be positive
    :param c: Offset, must be non-negative
    :param gamma: Exponent, must lie in :math:`(0, 1]`
    """

    a: float = eqx.field(default=1.0, converter=float)
    c: float = eqx.field(default=0.0, converter=float)
    gamma: float = eqx.field(default=0.5, converter=float)

    properties: ClassVar[AlgebraicProperties] = _NON_NEGATIVE_NEGATIVE_DEFINITE
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {
        "a": _POSITIVE,
        "c": _NON_NEGATIVE,
        "gamma": unit_interval(),
    }

    @override
    def value(self, z):
        return (self.a * jnp.asarray(z) + self.c) ** self.gamma

    @override
    def d_value(self, z):
        base = self.a * jnp.asarray(z) + self.c
        return self.a * self.gamma * base ** (self.gamma - 1)

    @override
    def d2_value(self, z):
        _, _, h_d2 = _power_terms(self.a * jnp.asarray(z) + self.c, 1.0, self.gamma)
        return self.a**2 * h_d2


class LogClass(CompositionClass):
    r"""
    Define the log class, :math:`g(z) = \log(1 + \alpha z)`.

    :param alpha: Scale, must be positive
    """

    alpha: float = eqx.field(default=1.0, converter=float)

    properties: ClassVar[AlgebraicProperties] = _NON_NEGATIVE_NEGATIVE_DEFINITE
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {"alpha": _POSITIVE}

    @override
    def value(self, z):
        return jnp.log1p(self.alpha * jnp.asarray(z))

    @override
    def d_value(self, z):
        return self.alpha / (1 + self.alpha * jnp.asarray(z))

    @override
    def d2_value(self, z):
        return -((self.alpha / (1 + self.alpha * jnp.asarray(z))) ** 2)


class GammaLogClass(CompositionClass):
    r"""
    Define the gamma-log class, :math:`g(z) = \log(1 + \alpha z^\gamma)`.

    :param alpha: Scale, must be positive
    :param gamma: Exponent, must lie in :math:`(0, 1]`
    """

    alpha: float = eqx.field(default=1.0, converter=float)
    gamma: float = eqx.field(default=0.5, converter=float)

    properties: ClassVar[AlgebraicProperties] = _NON_NEGATIVE_NEGATIVE_DEFINITE
    requirement: ClassVar[Requirement] = Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE
    domains: ClassVar[dict[str, Interval]] = {
        "alpha": _POSITIVE,
        "gamma": unit_interval(),
    }

    @override
    def value(self, z):
        return jnp.log1p(self.alpha * jnp.asarray(z) ** self.gamma)

    @override
    def d_value(self, z):
        h, h_d, _ = _power_terms(z, self.alpha, self.gamma)
        return h_d / (1 + h)

    @override
    def d2_value(self, z):
        h, h_d, h_d2 = _power_terms(z, self.alpha, self.gamma)
        return h_d2 / (1 + h) - (h_d / (1 + h)) ** 2


class SigmoidClass(CompositionClass):
    r"""
    Define the sigmoid class, :math:`g(z) = \tanh(a z + c)`.

    The result is not a Mercer kernel for any choice of hyperparameters.

    :param a: Scale, must be positive
    :param c: Offset, must be non-negative
    """

    a: float = eqx.field(default=1.0, converter=float)
    c: float = eqx.field(default=0.0, converter=float)

    requirement: ClassVar[Requirement] = Requirement.MERCER
    domains: ClassVar[dict[str, Interval]] = {"a": _POSITIVE, "c": _NON_NEGATIVE}

    @override
    def value(self, z):
        return jnp.tanh(self.a * jnp.asarray(z) + self.c)

    @override
    def d_value(self, z):
        return self.a * (1 - self.value(z) ** 2)

    @override
    def d2_value(self, z):
        t = self.value(z)
        return -2 * self.a**2 * t * (1 - t**2)
