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
Functionality to perform simple, generic tasks and operations.

The functions within this module are simple solutions to requirements that are
sufficiently generic to be useful across multiple areas of the codebase, such as the
pairwise transform used to vectorise per-pair kernel evaluations, the exceptions raised
throughout gramax and helpers for logging allocation sizes.
"""

import logging
import sys
from collections.abc import Callable
from functools import wraps
from math import prod
from typing import Union

import jax.numpy as jnp
from jax import Array, vmap
from jaxtyping import Shaped

_logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, stream=sys.stdout)

#: Number of elements above which dense derivative tensors trigger a warning.
LARGE_TENSOR_WARNING_SIZE = 50_000_000


class DimensionMismatchError(ValueError):
    """Raise when the feature dimensions of two operands do not agree."""


class InvalidHyperparameterError(ValueError):
    """Raise when a hyperparameter value lies outside of its declared domain."""


class NotComposableError(TypeError):
    """Raise when a composition class cannot be composed with a pairwise function."""


def pairwise(
    fn: Callable[
        [
            Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
            Union[Shaped[Array, " d"], Shaped[Array, ""], float, int],
        ],
        Shaped[Array, " *d"],
    ],
) -> Callable[
    [
        Union[
            Shaped[Array, " n d"], Shaped[Array, " d"], Shaped[Array, ""], float, int
        ],
        Union[
            Shaped[Array, " m d"], Shaped[Array, " d"], Shaped[Array, ""], float, int
        ],
    ],
    Shaped[Array, " n m *d"],
]:
    """
    Transform a function so it returns all pairwise evaluations of its inputs.

    The rows of the two (at least 2-dimensional) inputs are treated as observations.

    :param fn: the function to apply the pairwise transform to.
    :returns: function that returns an array whose entries are the evaluations of `fn`
        for every pairwise combination of its input arguments.
    """

    @wraps(fn)
    def pairwise_fn(
        x: Union[
            Shaped[Array, " n d"], Shaped[Array, " d"], Shaped[Array, ""], float, int
        ],
        y: Union[
            Shaped[Array, " m d"], Shaped[Array, " d"], Shaped[Array, ""], float, int
        ],
    ) -> Shaped[Array, " n m *d"]:
        x = jnp.atleast_2d(x)
        y = jnp.atleast_2d(y)
        return vmap(
            vmap(fn, in_axes=(0, None), out_axes=0),
            in_axes=(None, 0),
            out_axes=1,
        )(x, y)

    return pairwise_fn


def log_allocation(name: str, shape: tuple[int, ...]) -> None:
    """
    Log the shape of a dense array that is about to be allocated.

    Arrays with more than :data:`LARGE_TENSOR_WARNING_SIZE` elements are logged as a
    warning, since the second-derivative tensors grow as :math:`O(n m d^2)`.

    :param name: Human-readable name of the array
    :param shape: Shape of the array
    """
    size = prod(shape)
    if size > LARGE_TENSOR_WARNING_SIZE:
        _logger.warning(
            "Allocating %s with shape %s (%d elements); consider the streaming "
            "variants in gramax.kernels.derivatives",
            name,
            shape,
            size,
        )
    else:
        _logger.debug("Allocating %s with shape %s", name, shape)
