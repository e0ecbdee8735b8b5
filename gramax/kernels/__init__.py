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

"""Pairwise metrics, composite kernels and their matrix derivatives."""

from gramax.kernels.base import AlgebraicProperties, PairwiseFunction
from gramax.kernels.composite import (
    CompositeFunction,
    apply_tanh,
    compose_with,
    exponentiate,
    gaussian_kernel,
    laplacian_kernel,
    linear_kernel,
    matern_kernel,
    polynomial_kernel,
    raise_to_power,
    rational_quadratic_kernel,
    sigmoid_kernel,
)
from gramax.kernels.composition import (
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
    SigmoidClass,
)
from gramax.kernels.derivatives import (
    epsilon_tensor,
    kernel_dxdy,
    kernel_matrix_dtheta,
    kernel_matrix_dw,
    kernel_matrix_dx,
    kernel_matrix_dxdy,
    kernel_matrix_dxdy_blocks,
    kernel_matrix_dxdy_diagonal,
    kernel_matrix_dxdy_from_epsilons,
    kernel_matrix_dy,
    write_block,
)
from gramax.kernels.gram import (
    kernel_matrix,
    scalar_product_matrix,
    squared_distance_matrix,
)
from gramax.kernels.pairwise import (
    PairwiseMetric,
    ScalarProduct,
    SquaredEuclidean,
    scalar_product,
    scalar_product_indexed,
    squared_distance,
    squared_distance_indexed,
)

__all__ = [
    "AlgebraicProperties",
    "PairwiseFunction",
    "PairwiseMetric",
    "ScalarProduct",
    "SquaredEuclidean",
    "scalar_product",
    "scalar_product_indexed",
    "squared_distance",
    "squared_distance_indexed",
    "kernel_matrix",
    "scalar_product_matrix",
    "squared_distance_matrix",
    "Requirement",
    "CompositionClass",
    "ExponentialClass",
    "GammaExponentialClass",
    "RationalClass",
    "GammaRationalClass",
    "MaternClass",
    "ExponentiatedClass",
    "PolynomialClass",
    "PowerClass",
    "LogClass",
    "GammaLogClass",
    "SigmoidClass",
    "CompositeFunction",
    "compose_with",
    "raise_to_power",
    "exponentiate",
    "apply_tanh",
    "gaussian_kernel",
    "laplacian_kernel",
    "rational_quadratic_kernel",
    "matern_kernel",
    "polynomial_kernel",
    "linear_kernel",
    "sigmoid_kernel",
    "kernel_matrix_dx",
    "kernel_matrix_dy",
    "kernel_matrix_dw",
    "kernel_dxdy",
    "kernel_matrix_dxdy",
    "kernel_matrix_dxdy_blocks",
    "kernel_matrix_dxdy_diagonal",
    "write_block",
    "epsilon_tensor",
    "kernel_matrix_dxdy_from_epsilons",
    "kernel_matrix_dtheta",
]
