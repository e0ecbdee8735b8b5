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
Tests for input validation functions.

The tests within this file verify that the hyperparameter domains and the various input
validation functions produce the expected results on simple examples.
"""

import unittest

import gramax.validation
from gramax.data import Observations
from gramax.util import DimensionMismatchError, InvalidHyperparameterError


class TestInterval(unittest.TestCase):
    """
    Tests relating to hyperparameter domains.
    """

    def test_open_lower_bound(self) -> None:
        """
        Test an open lower bound excludes its own value.
        """
        interval = gramax.validation.left_bounded(0.0)
        self.assertFalse(interval.contains(0.0))
        self.assertTrue(interval.contains(1e-12))
        self.assertFalse(interval.contains(-1.0))

    def test_closed_lower_bound(self) -> None:
        """
        Test a closed lower bound includes its own value.
        """
        interval = gramax.validation.left_bounded(0.0, closed=True)
        self.assertTrue(interval.contains(0.0))
        self.assertFalse(interval.contains(-1e-12))

    def test_unit_interval(self) -> None:
        """
        Test the half-open unit interval, which excludes zero and includes one.
        """
        interval = gramax.validation.unit_interval()
        self.assertFalse(interval.contains(0.0))
        self.assertTrue(interval.contains(0.5))
        self.assertTrue(interval.contains(1.0))
        self.assertFalse(interval.contains(1.5))

    def test_integer_interval(self) -> None:
        """
        Test an integer interval rejects floats and booleans.
        """
        interval = gramax.validation.left_bounded(1, closed=True, integer=True)
        self.assertTrue(interval.contains(3))
        self.assertFalse(interval.contains(0))
        self.assertFalse(interval.contains(3.0))
        self.assertFalse(interval.contains(True))

    def test_unbounded(self) -> None:
        """
        Test an interval with no bounds contains every real value.
        """
        interval = gramax.validation.Interval()
        self.assertTrue(interval.contains(-1e30))
        self.assertTrue(interval.contains(1e30))

    def test_non_finite(self) -> None:
        """
        Test infinite and undefined values lie outside every interval.
        """
        for interval in (
            gramax.validation.Interval(),
            gramax.validation.left_bounded(0.0),
            gramax.validation.left_bounded(0.0, closed=True),
        ):
            self.assertFalse(interval.contains(float("inf")))
            self.assertFalse(interval.contains(float("nan")))
        self.assertFalse(gramax.validation.Interval().contains(float("-inf")))

    def test_validate_infinite(self) -> None:
        """
        Test validating an infinite value is flagged as invalid.
        """
        with self.assertRaisesRegex(
            InvalidHyperparameterError, r"'alpha' must lie in \(0, inf\), got inf"
        ):
            gramax.validation.left_bounded(0.0).validate(
                float("inf"), object_name="alpha"
            )

    def test_str(self) -> None:
        """
        Test intervals are displayed in bracket notation.
        """
        self.assertEqual(str(gramax.validation.left_bounded(0.0)), "(0, inf)")
        self.assertEqual(str(gramax.validation.unit_interval()), "(0, 1]")
        self.assertEqual(
            str(gramax.validation.left_bounded(1, closed=True, integer=True)),
            "integers in [1, inf)",
        )
        self.assertEqual(str(gramax.validation.Interval()), "(-inf, inf)")

    def test_validate_inside(self) -> None:
        """
        Test validating a value inside the interval returns nothing.
        """
        self.assertIsNone(
            gramax.validation.unit_interval().validate(0.25, object_name="gamma")
        )

    def test_validate_outside(self) -> None:
        """
        Test validating a value outside the interval names the hyperparameter.
        """
        with self.assertRaisesRegex(
            InvalidHyperparameterError, r"'gamma' must lie in \(0, 1\], got 2.0"
        ):
            gramax.validation.unit_interval().validate(2.0, object_name="gamma")

    def test_validate_invalid_input(self) -> None:
        """
        Test validating a value that cannot be compared to the bounds.

        The input is a string, which cannot be compared to the numerical bounds.
        """
        self.assertRaises(
            InvalidHyperparameterError,
            gramax.validation.left_bounded(0.0).validate,
            x="1.0",
            object_name="alpha",
        )

    def test_invalid_hyperparameter_is_value_error(self) -> None:
        """
        Test an invalid hyperparameter can be caught as a `ValueError`.
        """
        self.assertRaises(
            ValueError,
            gramax.validation.left_bounded(0.0).validate,
            x=-1.0,
            object_name="alpha",
        )


class TestInputValidationInstance(unittest.TestCase):
    """
    Tests relating to validation of inputs provided by the user being a specific type.
    """

    def test_validate_is_instance_float_to_int(self) -> None:
        """
        Test the function validate_is_instance comparing a float to an int.
        """
        self.assertRaises(
            TypeError,
            gramax.validation.validate_is_instance,
            x=120.0,
            object_name="var",
            expected_type=int,
        )

    def test_validate_is_instance_int_to_float(self) -> None:
        """
        Test the function validate_is_instance comparing an int to a float.
        """
        self.assertRaises(
            TypeError,
            gramax.validation.validate_is_instance,
            x=120,
            object_name="var",
            expected_type=float,
        )

    def test_validate_is_instance_float_to_float(self) -> None:
        """
        Test the function validate_is_instance comparing a float to a float.
        """
        self.assertIsNone(
            gramax.validation.validate_is_instance(
                x=50.0, object_name="var", expected_type=float
            )
        )

    def test_validate_is_instance_tuple(self) -> None:
        """
        Test the function validate_is_instance with a choice of types.
        """
        self.assertIsNone(
            gramax.validation.validate_is_instance(
                x="1", object_name="var", expected_type=(int, str)
            )
        )
        with self.assertRaisesRegex(
            TypeError, "'var' must be an instance of 'int' or 'str'"
        ):
            gramax.validation.validate_is_instance(
                x=1.0, object_name="var", expected_type=(int, str)
            )

    def test_validate_is_instance_invalid_expected_type(self) -> None:
        """
        Test the function validate_is_instance with an expected type that is no type.
        """
        with self.assertRaisesRegex(TypeError, "expected_type must be a type"):
            gramax.validation.validate_is_instance(
                x=1.0, object_name="var", expected_type=1.0
            )

    def test_validate_is_instance_message(self) -> None:
        """
        Test the function validate_is_instance names the object and the type.
        """
        with self.assertRaisesRegex(
            TypeError, "'x' must be an instance of 'Observations'"
        ):
            gramax.validation.validate_is_instance(
                x=[1.0], object_name="x", expected_type=Observations
            )


class TestInputValidationDimensions(unittest.TestCase):
    """
    Tests relating to validation of the shapes of observations and weights.
    """

    def test_validate_dimensions_equal(self) -> None:
        """
        Test matching feature dimensions are accepted.
        """
        self.assertIsNone(gramax.validation.validate_dimensions(3, 3))

    def test_validate_dimensions_columns(self) -> None:
        """
        Test mismatched row-oriented observations name the columns.
        """
        with self.assertRaisesRegex(
            DimensionMismatchError,
            "'x' and 'y' must have the same number of columns; got 2 and 3",
        ):
            gramax.validation.validate_dimensions(2, 3)

    def test_validate_dimensions_rows(self) -> None:
        """
        Test mismatched column-oriented observations name the rows.
        """
        with self.assertRaisesRegex(
            DimensionMismatchError,
            "'a' and 'b' must have the same number of rows; got 4 and 1",
        ):
            gramax.validation.validate_dimensions(
                4, 1, transposed=True, object_names=("a", "b")
            )

    def test_validate_weights(self) -> None:
        """
        Test a weight vector must match the feature dimension.
        """
        self.assertIsNone(gramax.validation.validate_weights(3, 3))
        with self.assertRaisesRegex(
            DimensionMismatchError,
            "'weights' has length 2 but the observations have dimension 3",
        ):
            gramax.validation.validate_weights(2, 3)

    def test_dimension_mismatch_is_value_error(self) -> None:
        """
        Test a dimension mismatch can be caught as a `ValueError`.
        """
        self.assertRaises(ValueError, gramax.validation.validate_weights, 1, 2)
