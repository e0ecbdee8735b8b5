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
Tests for the dense matrices of the base pairwise metrics.

The tests within this file verify that scalar-product and squared-distance matrices
agree with pairwise evaluation, and that single-set matrices are exactly symmetric.
"""

from collections.abc import Callable

import jax.numpy as jnp
import numpy as np
import pytest

from gramax.data import Observations
from gramax.kernels import (
    SquaredEuclidean,
    gaussian_kernel,
    kernel_matrix,
    scalar_product,
    scalar_product_matrix,
    squared_distance,
    squared_distance_matrix,
)
from gramax.util import DimensionMismatchError

_MATRIX_FUNCTIONS = [
    (scalar_product_matrix, scalar_product),
    (squared_distance_matrix, squared_distance),
]
_MATRIX_IDS = ["scalar_product", "squared_distance"]


class TestGramMatrices:
    """Test assembly of full matrices of the base metrics."""

    @pytest.mark.parametrize("weighted", [False, True])
    @pytest.mark.parametrize("matrix, function", _MATRIX_FUNCTIONS, ids=_MATRIX_IDS)
    def test_two_sets(
        self,
        jit_variant: Callable[[Callable], Callable],
        observations: tuple[np.ndarray, np.ndarray],
        matrix: Callable,
        function: Callable,
        weighted: bool,
    ) -> None:
        """Test each entry matches the metric evaluated on the pair."""
        x, y = observations
        weights = jnp.array([0.5, 1.0, 2.0]) if weighted else None
        expected = np.array([[function(xi, yj, weights) for yj in y] for xi in x])
        output = jit_variant(matrix)(x, y, weights)
        assert output.shape == (4, 5)
        np.testing.assert_allclose(output, expected, atol=1e-12)

    @pytest.mark.parametrize("weighted", [False, True])
    @pytest.mark.parametrize("matrix, function", _MATRIX_FUNCTIONS, ids=_MATRIX_IDS)
    def test_single_set(
        self,
        jit_variant: Callable[[Callable], Callable],
        observations: tuple[np.ndarray, np.ndarray],
        matrix: Callable,
        function: Callable,
        weighted: bool,
    ) -> None:
        """Test the single-set matrix is exactly symmetric and matches the metric."""
        x, _ = observations
        weights = jnp.array([0.5, 1.0, 2.0]) if weighted else None
        expected = np.array([[function(xi, xj, weights) for xj in x] for xi in x])
        output = jit_variant(matrix)(x, None, weights)
        np.testing.assert_array_equal(output, output.T)
        np.testing.assert_allclose(output, expected, atol=1e-12)

    def test_self_distance_diagonal(self) -> None:
        """Test the squared-distance self-matrix has an exactly zero diagonal."""
        generator = np.random.default_rng(11)
        x = generator.normal(loc=1e4, size=(20, 5))
        output = squared_distance_matrix(x)
        np.testing.assert_array_equal(jnp.diag(output), jnp.zeros(20))
        np.testing.assert_array_equal(output, output.T)

    def test_cancellation_is_clamped(self) -> None:
        """Test that nearly coincident distant points give no negative distances."""
        x = jnp.array([[1e8, 1e8], [1e8 + 1e-4, 1e8]])
        y = jnp.array([[1e8, 1e8 + 1e-4], [1e8, 1e8]])
        assert jnp.all(squared_distance_matrix(x, y) >= 0)
        assert jnp.all(squared_distance_matrix(x) >= 0)

    @pytest.mark.parametrize("upper", [True, False])
    @pytest.mark.parametrize("matrix, function", _MATRIX_FUNCTIONS, ids=_MATRIX_IDS)
    def test_triangle_options(
        self,
        observations: tuple[np.ndarray, np.ndarray],
        matrix: Callable,
        function: Callable,
        upper: bool,
    ) -> None:
        """Test `upper` and `symmetrize` on the single-set routines."""
        del function
        x, _ = observations
        full = matrix(x)
        mirrored = matrix(x, upper=upper)
        np.testing.assert_allclose(mirrored, full, atol=1e-12)
        triangle = matrix(x, upper=upper, symmetrize=False)
        expected = jnp.triu(full) if upper else jnp.tril(full)
        np.testing.assert_allclose(triangle, expected, atol=1e-12)

    @pytest.mark.parametrize("single_set", [False, True])
    @pytest.mark.parametrize("matrix, function", _MATRIX_FUNCTIONS, ids=_MATRIX_IDS)
    def test_transposed(
        self,
        observations: tuple[np.ndarray, np.ndarray],
        matrix: Callable,
        function: Callable,
        single_set: bool,
    ) -> None:
        """Test column-oriented input gives the same matrix as row-oriented input."""
        del function
        x, y = observations
        if single_set:
            expected = matrix(x)
            output = matrix(x.T, transposed=True)
        else:
            expected = matrix(x, y)
            output = matrix(x.T, y.T, transposed=True)
        np.testing.assert_allclose(output, expected, atol=1e-12)

    def test_observations_input(
        self, observations: tuple[np.ndarray, np.ndarray]
    ) -> None:
        """Test `Observations` carry their own orientation."""
        x, y = observations
        output = squared_distance_matrix(
            Observations(x.T, transposed=True), Observations(y)
        )
        np.testing.assert_allclose(output, squared_distance_matrix(x, y), atol=1e-12)

    def test_dtype(self, observations: tuple[np.ndarray, np.ndarray]) -> None:
        """Test the computation runs in the requested precision."""
        x, y = observations
        assert squared_distance_matrix(x, y, dtype=jnp.float32).dtype == jnp.float32
        assert scalar_product_matrix(x, dtype=jnp.float32).dtype == jnp.float32

    def test_one_dimensional_input(self) -> None:
        """Test a vector is read as observations in one dimension."""
        output = squared_distance_matrix(jnp.array([0.0, 1.0, 3.0]))
        np.testing.assert_array_equal(
            output, jnp.array([[0.0, 1.0, 9.0], [1.0, 0.0, 4.0], [9.0, 4.0, 0.0]])
        )

    @pytest.mark.parametrize(
        "transposed, axis",
        [(False, "columns"), (True, "rows")],
        ids=["row_observations", "column_observations"],
    )
    @pytest.mark.parametrize("matrix", [scalar_product_matrix, squared_distance_matrix])
    def test_dimension_mismatch(
        self, matrix: Callable, transposed: bool, axis: str
    ) -> None:
        """Test differing feature dimensions are rejected with both extents named."""
        x, y = jnp.ones((3, 2)), jnp.ones((3, 4))
        if transposed:
            x, y = x.T, y.T
        message = f"same number of {axis}; got 2 and 4"
        with pytest.raises(DimensionMismatchError, match=message):
            matrix(x, y, transposed=transposed)

    @pytest.mark.parametrize("matrix", [scalar_product_matrix, squared_distance_matrix])
    def test_weights_mismatch(self, matrix: Callable) -> None:
        """Test weights of the wrong length are rejected."""
        with pytest.raises(DimensionMismatchError, match="'weights' has length 2"):
            matrix(jnp.ones((3, 3)), None, jnp.ones(2))


class TestKernelMatrix:
    """Test evaluation of any pairwise function at matrix scale."""

    def test_gaussian_example(self) -> None:
        """Test the Gaussian kernel matrix on a small hand-computed example."""
        x = jnp.array([[0.0, 0.0], [1.0, 0.0]])
        y = jnp.array([[0.0, 0.0]])
        output = kernel_matrix(gaussian_kernel(1.0), x, y)
        np.testing.assert_allclose(output, jnp.array([[1.0], [jnp.exp(-1.0)]]))

    def test_metric(self, observations: tuple[np.ndarray, np.ndarray]) -> None:
        """Test a base metric can be evaluated directly."""
        x, y = observations
        np.testing.assert_allclose(
            kernel_matrix(SquaredEuclidean(), x, y), squared_distance_matrix(x, y)
        )

    def test_invalid_function(self) -> None:
        """Test objects that are not pairwise functions are rejected."""
        with pytest.raises(TypeError, match="'function' must be an instance of"):
            kernel_matrix(squared_distance, jnp.ones((2, 2)))
