"""Tests for the built-in functions and RND."""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import IllegalQuantityError, NumericOverflowError, TypeMismatchError
from functions import Builtins, Rng
from values import Double, format_number, to_single


class TestBuiltins(unittest.TestCase):

    def setUp(self):
        self.builtins = Builtins()

    def call(self, name, *args):
        return self.builtins.call(name, list(args))

    def test_string_slicing(self):
        self.assertEqual(self.call('LEFT$', 'HELLO', 2.0), 'HE')
        self.assertEqual(self.call('RIGHT$', 'HELLO', 3.0), 'LLO')
        self.assertEqual(self.call('MID$', 'HELLO', 2.0, 3.0), 'ELL')
        self.assertEqual(self.call('MID$', 'HELLO', 4.0), 'LO')
        self.assertEqual(self.call('MID$', 'HELLO', 9.0), '')

    def test_mid_position_zero(self):
        with self.assertRaises(IllegalQuantityError):
            self.call('MID$', 'HELLO', 0.0)

    def test_instr(self):
        self.assertEqual(self.call('INSTR', 'HELLO', 'L'), 3.0)
        self.assertEqual(self.call('INSTR', 4.0, 'HELLO', 'L'), 4.0)
        self.assertEqual(self.call('INSTR', 'HELLO', 'Z'), 0.0)

    def test_conversions(self):
        self.assertEqual(self.call('STR$', 5.0), ' 5')
        self.assertEqual(self.call('VAL', '12AB'), 12.0)
        self.assertEqual(self.call('VAL', 'X'), 0.0)
        self.assertEqual(self.call('CHR$', 65.0), 'A')
        self.assertEqual(self.call('ASC', 'A'), 65.0)
        self.assertEqual(self.call('HEX$', 255.0), 'FF')
        self.assertEqual(self.call('HEX$', -1.0), 'FFFF')
        self.assertEqual(self.call('OCT$', 8.0), '10')

    def test_asc_of_empty_string(self):
        with self.assertRaises(IllegalQuantityError):
            self.call('ASC', '')

    def test_numeric(self):
        self.assertEqual(self.call('INT', -1.5), -2.0)
        self.assertEqual(self.call('FIX', -1.5), -1.0)
        self.assertEqual(self.call('SGN', -3.0), -1.0)
        self.assertEqual(self.call('ABS', -3.0), 3.0)
        self.assertEqual(self.call('SQR', 16.0), 4.0)
        self.assertEqual(self.call('CINT', 2.5), 3.0)

    def test_double_arguments_stay_double(self):
        self.assertIsInstance(self.call('CDBL', 1.5), Double)
        self.assertIsInstance(self.call('INT', Double(2.5)), Double)
        self.assertIsInstance(self.call('ABS', Double(-2.5)), Double)
        self.assertNotIsInstance(self.call('INT', 2.5), Double)
        self.assertNotIsInstance(self.call('CSNG', Double(2.5)), Double)

    def test_domain_errors(self):
        with self.assertRaises(IllegalQuantityError):
            self.call('SQR', -1.0)
        with self.assertRaises(IllegalQuantityError):
            self.call('LOG', 0.0)
        with self.assertRaises(NumericOverflowError):
            self.call('EXP', 1000.0)

    def test_string_builders(self):
        self.assertEqual(self.call('STRING$', 3.0, 'AB'), 'AAA')
        self.assertEqual(self.call('STRING$', 3.0, 66.0), 'BBB')
        self.assertEqual(self.call('SPC', 2.0), '  ')
        with self.assertRaises(NumericOverflowError):
            self.call('SPC', 256.0)

    def test_type_checks(self):
        with self.assertRaises(TypeMismatchError):
            self.call('LEN', 1.0)
        with self.assertRaises(TypeMismatchError):
            self.call('ABS', 'X')

    def test_arity(self):
        with self.assertRaises(IllegalQuantityError):
            self.call('LEFT$', 'X')

    def test_print_column_functions(self):
        builtins = Builtins(column=lambda: 7)
        self.assertEqual(builtins.call('POS', [0.0]), 7.0)
        self.assertEqual(builtins.call('TAB', [10.0]), '   ')
        self.assertEqual(builtins.call('TAB', [3.0]), '')


class TestRng(unittest.TestCase):

    def test_negative_argument_reseeds(self):
        first, second = Rng(), Rng()
        a = [first.next(-3.0)] + [first.next() for _ in range(5)]
        b = [second.next(-3.0)] + [second.next() for _ in range(5)]
        self.assertEqual(a, b)

    def test_seeded_value_is_summed_in_single_precision(self):
        rng = Rng()
        value = rng.next(to_single(-1.61803))
        self.assertEqual(value, to_single(value))
        self.assertEqual(format_number(value), ' 0.2008394')

    def test_zero_repeats_last_value(self):
        rng = Rng()
        value = rng.next()
        self.assertEqual(rng.next(0.0), value)

    def test_range(self):
        rng = Rng()
        rng.reseed()
        for _ in range(100):
            value = rng.next()
            self.assertTrue(0.0 <= value < 1.0)


if __name__ == '__main__':
    unittest.main()
