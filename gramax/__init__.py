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
Gramax library for kernel matrices and their derivatives.

Gramax evaluates pairwise kernel functions between two sets of observations,
:math:`\{x_i\}_{i=1}^n` and :math:`\{y_j\}_{j=1}^m` in :math:`\mathbb{R}^d`, assembles
them into dense :math:`n \times m` matrices and computes the exact derivatives of those
matrices with respect to the observations, the weights of the base metric and the
hyperparameters of the kernel. Kernels are built by composing a scalar transform with
one of two base metrics, the scalar product and the squared Euclidean distance.

"""

__version__ = "0.1.0"

from gramax.data import Observations, as_observations
from gramax.kernels import (
    CompositeFunction,
    ScalarProduct,
    SquaredEuclidean,
    gaussian_kernel,
    kernel_matrix,
    kernel_matrix_dx,
    kernel_matrix_dxdy,
    kernel_matrix_dy,
)
from gramax.util import (
    DimensionMismatchError,
    InvalidHyperparameterError,
    NotComposableError,
)

__all__ = [
    "Observations",
    "as_observations",
    "CompositeFunction",
    "ScalarProduct",
    "SquaredEuclidean",
    "gaussian_kernel",
    "kernel_matrix",
    "kernel_matrix_dx",
    "kernel_matrix_dy",
    "kernel_matrix_dxdy",
    "DimensionMismatchError",
    "InvalidHyperparameterError",
    "NotComposableError",
]
