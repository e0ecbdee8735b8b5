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
Special functions missing from :mod:`jax.scipy.special`.

The modified Bessel function of the second kind, :math:`K_\nu`, is evaluated on the host
by :func:`scipy.special.kv` through :func:`jax.pure_callback`, so it supports ``jit``
and ``vmap`` but always runs on the CPU. Differentiation is supported with respect to
the argument only, using :math:`K_\nu'(x) = -(K_{\nu-1}(x) + K_{\nu+1}(x)) / 2`.
"""

from functools import partial

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike
from scipy import special


def _host_kv(nu: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Evaluate :func:`scipy.special.kv` keeping the dtype of ``x``."""
    return np.asarray(special.kv(nu, x), dtype=x.dtype)


@partial(jax.custom_jvp, nondiff_argnums=(0,))
def kv(nu: float, x: ArrayLike) -> Array:
    r"""
    Evaluate the modified Bessel function of the second kind, :math:`K_\nu(x)`.

    :param nu: Order of the Bessel function; not differentiable
    :param x: Non-negative argument
    :return: :math:`K_\nu(x)`, with the shape and dtype of ``x``
    """
    x = jnp.asarray(x)
    if not jnp.issubdtype(x.dtype, jnp.inexact):
        x = x.astype(float)
    result = jax.ShapeDtypeStruct(x.shape, x.dtype)
    return jax.pure_callback(
        _host_kv, result, jnp.asarray(nu, dtype=x.dtype), x, vmap_method="expand_dims"
    )


@kv.defjvp
def _kv_jvp(nu, primals, tangents):
    (x,) = primals
    (x_dot,) = tangents
    derivative = -(kv(nu - 1, x) + kv(nu + 1, x)) / 2
    return kv(nu, x), derivative * x_dot
