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
Functionality to validate data passed throughout gramax.

The functions within this module are intended to be used as a means to validate inputs
passed to classes, functions and methods throughout the gramax codebase: hyperparameter
domains, operand types and the agreement of feature dimensions between operands.
"""

# Support annotations with | in Python < 3.10
from __future__ import annotations

import math
from numbers import Integral
from typing import NamedTuple

from gramax.util import DimensionMismatchError, InvalidHyperparameterError


class Bound(NamedTuple):
    """
    One end of an interval.

    :param value: Location of the bound
    :param closed: If :data:`True` the bound itself belongs to the interval
    """

    value: float
    closed: bool = False


class Interval(NamedTuple):
    """
    Domain of a hyperparameter.

    Only finite values belong to an interval, whatever its bounds.

    :param lower: Lower :class:`Bound`, or :data:`None` if unbounded below
    :param upper: Upper :class:`Bound`, or :data:`None` if unbounded above
    :param integer: If :data:`True`, only integer values belong to the interval
    """

    lower: Bound | None = None
    upper: Bound | None = None
    integer: bool = False

    def contains(self, x: float | int) -> bool:
        """Return :data:`True` if ``x`` lies in the interval."""
        if self.integer and (isinstance(x, bool) or not isinstance(x, Integral)):
            return False
        if not math.isfinite(x):
            return False
        if self.lower is not None:
            if self.lower.closed and not x >= self.lower.value:
                return False
            if not self.lower.closed and not x > self.lower.value:
                return False
        if self.upper is not None:
            if self.upper.closed and not x <= self.upper.value:
                return False
            if not self.upper.closed and not x < self.upper.value:
                return False
        return True

    def validate(self, x: float | int, object_name: str) -> None:
        """
        Verify that ``x`` lies in the interval.

        :param x: Hyperparameter value to check
        :param object_name: Name of ``x`` to display if it is outside of the interval
        :raises InvalidHyperparameterError: Raised if ``x`` is outside of the interval
        """
        try:
            is_valid = self.contains(x)
        except TypeError as exc:
            raise InvalidHyperparameterError(
                f"'{object_name}' must be comparable to {self}"
            ) from exc
        if not is_valid:
            raise InvalidHyperparameterError(
                f"'{object_name}' must lie in {self}, got {x!r}"
            )

    def __str__(self) -> str:
        """Return the interval in bracket notation, e.g. ``(0, 1]``."""
        left = "-inf" if self.lower is None else f"{self.lower.value:g}"
        right = "inf" if self.upper is None else f"{self.upper.value:g}"
        left_bracket = "[" if self.lower is not None and self.lower.closed else "("
        right_bracket = "]" if self.upper is not None and self.upper.closed else ")"
        description = f"{left_bracket}{left}, {right}{right_bracket}"
        return f"integers in {description}" if self.integer else description


def left_bounded(value: float, closed: bool = False, integer: bool = False) -> Interval:
    """Return the interval of values above ``value``."""
    return Interval(lower=Bound(value, closed), integer=integer)


def unit_interval() -> Interval:
    """Return the half-open interval :math:`(0, 1]` used by exponent parameters."""
    return Interval(lower=Bound(0.0, closed=False), upper=Bound(1.0, closed=True))


def validate_is_instance(
    x: object,
    object_name: str,
    expected_type: type | tuple[type, ...],
) -> None:
    """
    Verify that a given object is of a given type.

    :param x: Object we wish to validate
    :param object_name: Name of ``x`` to display if it is not of type ``expected_type``
    :param expected_type: Expected type of ``x``, can be a tuple to specify a
        choice of valid types
    :raises TypeError: Raised if ``x`` is not of type ``expected_type``
    """
    try:
        is_valid_type = isinstance(x, expected_type)
    except TypeError as exc:
        raise TypeError(
            "expected_type must be a type, tuple of types or a union"
        ) from exc

    if not is_valid_type:
        if isinstance(expected_type, tuple):
            names = " or ".join(f"'{t.__qualname__}'" for t in expected_type)
        else:
            names = f"'{expected_type.__qualname__}'"
        raise TypeError(f"'{object_name}' must be an instance of {names}")


def validate_dimensions(
    x_dimension: int,
    y_dimension: int,
    transposed: bool = False,
    object_names: tuple[str, str] = ("x", "y"),
) -> None:
    """
    Verify that two observation sets share the same feature dimension.

    :param x_dimension: Feature dimension of the first observation set
    :param y_dimension: Feature dimension of the second observation set
    :param transposed: If :data:`True` observations are columns, so the number of rows
        is expected to match, otherwise the number of columns is expected to match
    :param object_names: Names of the two observation sets to display
    :raises DimensionMismatchError: Raised if the dimensions differ
    """
    if x_dimension != y_dimension:
        axis = "rows" if transposed else "columns"
        x_name, y_name = object_names
        raise DimensionMismatchError(
            f"'{x_name}' and '{y_name}' must have the same number of {axis}; got "
            f"{x_dimension} and {y_dimension}"
        )


def validate_weights(weights_size: int, dimension: int) -> None:
    """
    Verify that a weight vector matches the feature dimension.

    :param weights_size: Length of the weight vector
    :param dimension: Feature dimension of the observations
    :raises DimensionMismatchError: Raised if the two disagree
    """
    if weights_size != dimension:
        raise DimensionMismatchError(
            f"'weights' has length {weights_size} but the observations have "
            f"dimension {dimension}"
        )
