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

"""
Tests for the composition classes.

The tests within this file verify hyperparameter validation, declared properties and
composability, and that the closed-form derivatives of each class agree with automatic
differentiation of its value.
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from scipy.special import gamma as gamma_function
from scipy.special import kv as scipy_kv

from gramax.kernels import (
    CompositionClass,
    ExponentialClass,
    ExponentiatedClass,
    GammaExponentialClass,
    GammaLogClass,
    GammaRationalClass,
    LogClass,
    MaternClass,
    PolynomialClass,
    PowerClass,
    RationalClass,
    Requirement,
    ScalarProduct,
    SigmoidClass,
    SquaredEuclidean,
)
from gramax.util import InvalidHyperparameterError

_CLASSES = [
    ExponentialClass(1.3),
    GammaExponentialClass(0.8, 0.6),
    GammaExponentialClass(0.8, 1.0),
    RationalClass(0.7, 1.9),
    GammaRationalClass(1.1, 0.6, 0.4),
    MaternClass(1.5, 0.8),
    MaternClass(2.3, 1.7),
    ExponentiatedClass(0.4, 0.2),
    PolynomialClass(0.9, 1.2, 3),
    PolynomialClass(1.4, 0.5, 1),
    PowerClass(1.3, 0.2, 0.7),
    LogClass(2.1),
    GammaLogClass(0.6, 0.3),
    SigmoidClass(0.5, 0.3),
]


class TestDefaults:
    """Test the default hyperparameters of every class."""

    @pytest.mark.parametrize(
        "composition, expected",
        [
            (ExponentialClass(), {"alpha": 1.0}),
            (GammaExponentialClass(), {"alpha": 1.0, "gamma": 0.5}),
            (RationalClass(), {"alpha": 1.0, "beta": 1.0}),
            (GammaRationalClass(), {"alpha": 1.0, "beta": 1.0, "gamma": 0.5}),
            (MaternClass(), {"nu": 1.0, "rho": 1.0}),
            (ExponentiatedClass(), {"a": 1.0, "c": 0.0}),
            (PolynomialClass(), {"a": 1.0, "c": 0.0, "degree": 3}),
            (PowerClass(), {"a": 1.0, "c": 0.0, "gamma": 0.5}),
            (LogClass(), {"alpha": 1.0}),
            (GammaLogClass(), {"alpha": 1.0, "gamma": 0.5}),
            (SigmoidClass(), {"a": 1.0, "c": 0.0}),
        ],
    )
    def test_defaults(self, composition: CompositionClass, expected: dict) -> None:
        """Test each class is constructed with the documented defaults."""
        assert composition.hyperparameters == expected


class TestValidation:
    """Test hyperparameters outside of their domain are rejected."""

    @pytest.mark.parametrize(
        "composition_type, values",
        [
            (ExponentialClass, {"alpha": 0.0}),
            (ExponentialClass, {"alpha": -1.0}),
            (GammaExponentialClass, {"gamma": 0.0}),
            (GammaExponentialClass, {"gamma": 1.5}),
            (RationalClass, {"beta": 0.0}),
            (GammaRationalClass, {"gamma": 2.0}),
            (MaternClass, {"nu": 0.0}),
            (MaternClass, {"rho": -2.0}),
            (ExponentiatedClass, {"c": -0.1}),
            (PolynomialClass, {"degree": 0}),
            (PolynomialClass, {"degree": 2.5}),
            (PolynomialClass, {"c": -1.0}),
            (PowerClass, {"gamma": 1.01}),
            (LogClass, {"alpha": 0.0}),
            (GammaLogClass, {"gamma": -0.5}),
            (SigmoidClass, {"a": 0.0}),
            (ExponentialClass, {"alpha": float("inf")}),
            (PolynomialClass, {"c": float("inf")}),
            (RationalClass, {"alpha": float("nan")}),
            (MaternClass, {"rho": float("inf")}),
        ],
    )
    def test_invalid(self, composition_type: type, values: dict) -> None:
        """Test construction fails for a value outside of the domain."""
        (name,) = values
        with pytest.raises(InvalidHyperparameterError, match=f"'{name}' must lie in"):
            composition_type(**values)

    @pytest.mark.parametrize(
        "composition_type, values",
        [
            (GammaExponentialClass, {"gamma": 1.0}),
            (ExponentiatedClass, {"c": 0.0}),
            (PolynomialClass, {"degree": 1, "c": 0.0}),
            (PowerClass, {"gamma": 1.0}),
        ],
    )
    def test_closed_bounds(self, composition_type: type, values: dict) -> None:
        """Test values on a closed bound are accepted."""
        composition = composition_type(**values)
        for name, value in values.items():
            assert composition.hyperparameters[name] == value

    def test_degree_must_be_integer(self) -> None:
        """Test a float degree is rejected even when integral."""
        with pytest.raises(InvalidHyperparameterError, match="integers in"):
            PolynomialClass(degree=2.0)


class TestHyperparameters:
    """Test equality and replacement of hyperparameters."""

    def test_equality(self) -> None:
        """Test instances are equal exactly when class and hyperparameters agree."""
        assert ExponentialClass(2.0) == ExponentialClass(2)
        assert ExponentialClass(2.0) != ExponentialClass(3.0)
        assert ExponentialClass(1.0) != LogClass(1.0)

    def test_with_hyperparameters(self) -> None:
        """Test replacement returns a new instance and leaves the original alone."""
        original = RationalClass(1.0, 2.0)
        replaced = original.with_hyperparameters(beta=3.0)
        assert replaced == RationalClass(1.0, 3.0)
        assert original.hyperparameters == {"alpha": 1.0, "beta": 2.0}

    def test_with_invalid_hyperparameters(self) -> None:
        """Test replacement validates the new value."""
        with pytest.raises(InvalidHyperparameterError):
            RationalClass().with_hyperparameters(alpha=-1.0)

    def test_with_unknown_hyperparameters(self) -> None:
        """Test replacement rejects names that are not hyperparameters."""
        with pytest.raises(TypeError, match="no hyperparameters \\['delta'\\]"):
            RationalClass().with_hyperparameters(delta=1.0)


class TestComposability:
    """Test declared properties and requirements of the classes."""

    @pytest.mark.parametrize(
        "composition, requirement",
        [
            (ExponentialClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (GammaExponentialClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (RationalClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (GammaRationalClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (MaternClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (ExponentiatedClass(), Requirement.MERCER),
            (PolynomialClass(), Requirement.MERCER),
            (PowerClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (LogClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (GammaLogClass(), Requirement.NEGATIVE_DEFINITE_NON_NEGATIVE),
            (SigmoidClass(), Requirement.MERCER),
        ],
    )
    def test_requirement(
        self, composition: CompositionClass, requirement: Requirement
    ) -> None:
        """Test composability with each base metric follows the requirement."""
        mercer = requirement is Requirement.MERCER
        assert composition.requirement is requirement
        assert composition.is_composable_with(ScalarProduct.properties) is mercer
        assert composition.is_composable_with(SquaredEuclidean.properties) is not mercer

    def test_properties(self) -> None:
        """Test the property records declared by representative classes."""
        positive = ExponentialClass.properties
        assert positive.is_mercer and positive.is_nonnegative
        assert not positive.attains_zero
        assert PolynomialClass.properties.is_mercer
        assert PolynomialClass.properties.attains_negative
        power = PowerClass.properties
        assert power.is_negative_definite and power.is_nonnegative
        assert not power.is_mercer
        sigmoid = SigmoidClass.properties
        assert not sigmoid.is_mercer and not sigmoid.is_negative_definite


class TestDerivatives:
    """Test values and closed-form derivatives of every class."""

    @pytest.fixture(scope="class")
    def z(self) -> jax.Array:
        """Return points at which to evaluate the classes."""
        return jnp.array([0.2, 0.9, 1.7, 3.1])

    @pytest.mark.parametrize("composition", _CLASSES, ids=repr)
    def test_first_derivative(
        self, composition: CompositionClass, z: jax.Array
    ) -> None:
        """Test `d_value` against automatic differentiation of `value`."""
        expected = jax.vmap(jax.grad(composition.value))(z)
        np.testing.assert_allclose(composition.d_value(z), expected, rtol=1e-8)

    @pytest.mark.parametrize("composition", _CLASSES, ids=repr)
    def test_second_derivative(
        self, composition: CompositionClass, z: jax.Array
    ) -> None:
        """Test `d2_value` against automatic differentiation of `d_value`."""
        expected = jax.vmap(jax.grad(composition.d_value))(z)
        np.testing.assert_allclose(
            composition.d2_value(z), expected, rtol=1e-8, atol=1e-12
        )

    @pytest.mark.parametrize(
        "composition, expected",
        [
            (ExponentialClass(2.0), lambda z: np.exp(-2.0 * z)),
            (GammaExponentialClass(1.0, 0.5), lambda z: np.exp(-np.sqrt(z))),
            (RationalClass(1.0, 2.0), lambda z: (1 + z) ** -2.0),
            (ExponentiatedClass(1.0, 0.5), lambda z: np.exp(z + 0.5)),
            (PolynomialClass(1.0, 0.0, 2), lambda z: z**2),
            (PowerClass(2.0, 1.0, 0.5), lambda z: np.sqrt(2 * z + 1)),
            (LogClass(3.0), lambda z: np.log(1 + 3 * z)),
            (GammaLogClass(1.0, 0.5), lambda z: np.log(1 + np.sqrt(z))),
            (SigmoidClass(1.0, 0.0), np.tanh),
        ],
    )
    def test_value(self, composition: CompositionClass, expected, z: jax.Array):
        """Test values against direct evaluation of the formula."""
        np.testing.assert_allclose(composition.value(z), expected(np.asarray(z)))

    def test_matern_three_halves(self, z: jax.Array) -> None:
        """Test the Matérn class of order 3/2 against its elementary closed form."""
        rho = 0.7
        u = np.sqrt(3.0) * np.asarray(z) / rho
        np.testing.assert_allclose(
            MaternClass(1.5, rho).value(z), (1 + u) * np.exp(-u), rtol=1e-10
        )

    def test_matern_against_scipy(self, z: jax.Array) -> None:
        """Test the Matérn class of a general order against scipy."""
        nu, rho = 2.3, 1.4
        u = np.sqrt(2 * nu) * np.asarray(z) / rho
        expected = 2 ** (1 - nu) / gamma_function(nu) * u**nu * scipy_kv(nu, u)
        np.testing.assert_allclose(MaternClass(nu, rho).value(z), expected)

    @pytest.mark.parametrize("nu", [0.5, 1.0, 2.5])
    def test_matern_at_zero(self, nu: float) -> None:
        """Test the removable singularity at zero is guarded."""
        output = MaternClass(nu, 1.0).value(jnp.array([0.0]))
        assert jnp.all(jnp.isfinite(output))
        np.testing.assert_allclose(output, 1.0, rtol=1e-6)

    def test_linear_polynomial_curvature(self) -> None:
        """Test the degree-one polynomial has zero second derivative everywhere."""
        composition = PolynomialClass(2.0, 1.0, 1)
        z = jnp.array([-1.0, 0.0, 2.0])
        np.testing.assert_array_equal(composition.d2_value(z), jnp.zeros(3))
        np.testing.assert_array_equal(composition.d_value(z), jnp.full(3, 2.0))

    @pytest.mark.parametrize(
        "composition",
        [
            GammaExponentialClass(1.0, 1.0),
            GammaLogClass(1.0, 1.0),
            PowerClass(1.0, 0.0, 1.0),
        ],
        ids=repr,
    )
    def test_unit_exponent_at_zero(self, composition: CompositionClass) -> None:
        """Test a unit exponent gives finite derivatives at zero."""
        z = jnp.array([0.0])
        assert jnp.all(jnp.isfinite(composition.d_value(z)))
        assert jnp.all(jnp.isfinite(composition.d2_value(z)))
