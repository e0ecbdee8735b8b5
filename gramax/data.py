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

"""Data-structures for representing sets of observations in either orientation."""

from typing import Optional, Union

import equinox as eqx
import jax.numpy as jnp
from beartype import beartype
from jax.typing import DTypeLike
from jaxtyping import Array, ArrayLike, Shaped, jaxtyped

from gramax.validation import validate_dimensions


def _atleast_2d_consistent(
    array: Shaped[ArrayLike, " *n"], dtype: Optional[DTypeLike] = None
) -> Shaped[Array, " n d"]:
    r"""
    Convert inputs to arrays with at least 2 dimensions.

    .. note::

        This function differs from :func:`jax.numpy.atleast_2d` in that it converts
        1-dimensional ``n``-vectors into arrays of shape ``(n, 1)`` rather than
        ``(1, n)``.

    :param array: Singular array
    :param dtype: Optional dtype to cast the array to
    :return: At least 2-dimensional array
    """
    array = jnp.asarray(array, dtype=dtype)
    if not jnp.issubdtype(array.dtype, jnp.inexact):
        array = array.astype(float)
    if array.ndim == 1:
        return jnp.expand_dims(array, 1)
    return jnp.atleast_2d(array)


@jaxtyped(typechecker=beartype)
class Observations(eqx.Module):
    r"""
    Class for representing a set of observations.

    A set of ``n`` observations :math:`\{x_i\}_{i=1}^n` with :math:`x_i\in\mathbb{R}^d`
    is stored as a 2-dimensional array. When ``transposed`` is :data:`False`, rows index
    observations and the array is :math:`n \times d` (a design matrix); otherwise
    columns index observations and the array is :math:`d \times n`.

    .. note::
        `n`-vector inputs are interpreted as `n` observations in 1-dimension, whatever
        the orientation flag.

    :param data: The array of observations
    :param transposed: If :data:`True`, columns rather than rows index observations
    :param dtype: Optional floating point type to cast ``data`` to; double precision
        requires ``jax_enable_x64``
    """

    data: Shaped[Array, " a b"]
    transposed: bool = eqx.field(static=True)

    def __init__(
        self,
        data: Shaped[ArrayLike, " *n"],
        transposed: bool = False,
        dtype: Optional[DTypeLike] = None,
    ):
        """Initialise `Observations`, interpreting vectors as 1-dimensional points."""
        array = _atleast_2d_consistent(data, dtype)
        if transposed and jnp.ndim(data) == 1:
            array = array.T
        self.data = array
        self.transposed = transposed

    def __len__(self) -> int:
        """Return the number of observations."""
        return self.num_points

    @property
    def num_points(self) -> int:
        """Return the number of observations, ``n``."""
        return self.data.shape[1 if self.transposed else 0]

    @property
    def dimension(self) -> int:
        """Return the feature dimension, ``d``."""
        return self.data.shape[0 if self.transposed else 1]

    @property
    def dtype(self):
        """Return dtype of data; used for jaxtyping annotations."""
        return self.data.dtype

    @property
    def points(self) -> Shaped[Array, " n d"]:
        r"""Return the observations as an :math:`n \times d` design matrix."""
        return self.data.T if self.transposed else self.data


def as_observations(
    x: Union[Shaped[ArrayLike, " *n"], Observations],
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> Observations:
    """
    Cast ``x`` to an `Observations` instance.

    Existing `Observations` are returned unchanged unless a different ``dtype`` is
    requested; their own orientation flag takes precedence over ``transposed``.
    """
    if isinstance(x, Observations):
        if dtype is None or x.dtype == dtype:
            return x
        return Observations(x.data, x.transposed, dtype)
    return Observations(jnp.asarray(x), transposed, dtype)


def as_observation_pair(
    x: Union[Shaped[ArrayLike, " *n"], Observations],
    y: Union[Shaped[ArrayLike, " *m"], Observations, None] = None,
    transposed: bool = False,
    dtype: Optional[DTypeLike] = None,
) -> tuple[Shaped[Array, " n d"], Shaped[Array, " m d"]]:
    r"""
    Cast two observation sets to design matrices with a common feature dimension.

    :param x: First observation set
    :param y: Second observation set; :data:`None` means ``y`` is ``x``
    :param transposed: Orientation flag applied to any raw array argument
    :param dtype: Optional floating point type to cast the observations to
    :return: The :math:`n \times d` and :math:`m \times d` design matrices
    :raises DimensionMismatchError: Raised if the feature dimensions disagree
    """
    x_obs = as_observations(x, transposed, dtype)
    if y is None:
        return x_obs.points, x_obs.points
    y_obs = as_observations(y, transposed, dtype)
    validate_dimensions(x_obs.dimension, y_obs.dimension, x_obs.transposed)
    return x_obs.points, y_obs.points
