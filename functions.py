import math
import random
import struct
from datetime import datetime

from errors import IllegalQuantityError, NumericOverflowError
from values import (Double, number, string, to_single, to_double, to_integer, to_count,
                    format_number, parse_number, precision_of)

# name -> (fewest, most) arguments
FUNCTIONS = {
    'ABS': (1, 1), 'ASC': (1, 1), 'ATN': (1, 1), 'CDBL': (1, 1), 'CHR$': (1, 1),
    'CINT': (1, 1), 'COS': (1, 1), 'CSNG': (1, 1), 'DATE$': (0, 0), 'EXP': (1, 1),
    'FIX': (1, 1), 'HEX$': (1, 1), 'INSTR': (2, 3), 'INT': (1, 1), 'LEFT$': (2, 2),
    'LEN': (1, 1), 'LOG': (1, 1), 'MID$': (2, 3), 'OCT$': (1, 1), 'POS': (0, 1),
    'RIGHT$': (2, 2), 'RND': (0, 1), 'SGN': (1, 1), 'SIN': (1, 1), 'SPC': (1, 1),
    'SQR': (1, 1), 'STR$': (1, 1), 'STRING$': (2, 2), 'TAB': (1, 1), 'TAN': (1, 1),
    'TIME$': (0, 0), 'VAL': (1, 1),
}


class Rng:
    """Three-generator Wichmann-Hill RND, the same numbers on every machine."""

    def __init__(self):
        self.state = (1, 1, 1)

    def reseed(self):
        self.state = tuple(random.randint(1, 30000) for _ in range(3))

    def next(self, arg=1.0):
        if arg < 0:
            seed = struct.unpack('<I', struct.pack('>f', arg))[0] & 0xFFFFFF
            seed = seed or 1
            self.state = (seed, seed, seed)
        s0, s1, s2 = self.state
        if arg != 0:
            s0 = 171 * s0 % 30269
            s1 = 172 * s1 % 30307
            s2 = 170 * s2 % 30323
            self.state = (s0, s1, s2)
        # summed in single precision, one rounding per step
        total = to_single(to_single(s0 / 30269.0) + to_single(s1 / 30307.0))
        total = to_single(total + to_single(s2 / 30323.0))
        return to_single(total % 1.0)


class Builtins:
    """Dispatch table for the built-in functions.

    `column` returns the current print column, which TAB and POS need.
    """

    def __init__(self, rng=None, column=None):
        self.rng = rng or Rng()
        self.column = column or (lambda: 0)
        self.table = {
            'ABS': self.fn_abs, 'ASC': self.fn_asc, 'ATN': self.fn_atn,
            'CDBL': self.fn_cdbl, 'CHR$': self.fn_chr, 'CINT': self.fn_cint,
            'COS': self.fn_cos, 'CSNG': self.fn_csng, 'DATE$': self.fn_date,
            'EXP': self.fn_exp, 'FIX': self.fn_fix, 'HEX$': self.fn_hex,
            'INSTR': self.fn_instr, 'INT': self.fn_int, 'LEFT$': self.fn_left,
            'LEN': self.fn_len, 'LOG': self.fn_log, 'MID$': self.fn_mid,
            'OCT$': self.fn_oct, 'POS': self.fn_pos, 'RIGHT$': self.fn_right,
            'RND': self.fn_rnd, 'SGN': self.fn_sgn, 'SIN': self.fn_sin,
            'SPC': self.fn_spc, 'SQR': self.fn_sqr, 'STR$': self.fn_str,
            'STRING$': self.fn_string, 'TAB': self.fn_tab, 'TAN': self.fn_tan,
            'TIME$': self.fn_time, 'VAL': self.fn_val,
        }

    def call(self, name, args):
        fewest, most = FUNCTIONS[name]
        if not fewest <= len(args) <= most:
            raise IllegalQuantityError()
        result = self.table[name](*args)
        if isinstance(result, str):
            return result
        if isinstance(result, Double):
            return to_double(result)
        return to_single(result)

    # Numeric

    def fn_abs(self, x):
        return precision_of(x)(abs(number(x)))

    def fn_atn(self, x):
        return math.atan(number(x))

    def fn_cos(self, x):
        return math.cos(number(x))

    def fn_sin(self, x):
        return math.sin(number(x))

    def fn_tan(self, x):
        return math.tan(number(x))

    def fn_exp(self, x):
        try:
            return math.exp(number(x))
        except OverflowError:
            raise NumericOverflowError()

    def fn_log(self, x):
        if number(x) <= 0:
            raise IllegalQuantityError()
        return math.log(x)

    def fn_sqr(self, x):
        if number(x) < 0:
            raise IllegalQuantityError()
        return math.sqrt(x)

    def fn_int(self, x):
        return precision_of(x)(math.floor(number(x)))

    def fn_fix(self, x):
        return precision_of(x)(math.trunc(number(x)))

    def fn_cint(self, x):
        return float(to_integer(x))

    def fn_csng(self, x):
        return to_single(x)

    def fn_cdbl(self, x):
        return to_double(x)

    def fn_sgn(self, x):
        x = number(x)
        if x == 0:
            return 0.0
        return -1.0 if x < 0 else 1.0

    def fn_rnd(self, x=1.0):
        return self.rng.next(number(x))

    # Strings

    def fn_asc(self, s):
        if not string(s):
            raise IllegalQuantityError()
        return float(ord(s[0]))

    def fn_chr(self, x):
        return chr(to_count(x))

    def fn_len(self, s):
        return float(len(string(s)))

    def fn_left(self, s, n):
        return string(s)[:to_count(n)]

    def fn_right(self, s, n):
        n = to_count(n)
        if n == 0:
            return ""
        return string(s)[-n:]

    def fn_mid(self, s, start, length=None):
        s = string(s)
        start = to_count(start)
        if start == 0:
            raise IllegalQuantityError()
        if length is None:
            return s[start - 1:]
        return s[start - 1:start - 1 + to_count(length)]

    def fn_instr(self, *args):
        if len(args) == 3:
            start, s, pattern = to_integer(args[0]), args[1], args[2]
        else:
            start, (s, pattern) = 1, args
        s, pattern = string(s), string(pattern)
        if start <= 0:
            raise IllegalQuantityError()
        if start > len(s):
            return 0.0
        return float(s.find(pattern, start - 1) + 1)

    def fn_str(self, x):
        return format_number(number(x))

    def fn_val(self, s):
        s = string(s).strip()
        while s:
            value = parse_number(s)
            if value is not None:
                return value
            s = s[:-1]
        return 0.0

    def fn_hex(self, x):
        return '%X' % (to_integer(x) & 0xFFFF)

    def fn_oct(self, x):
        return '%o' % (to_integer(x) & 0xFFFF)

    def fn_string(self, n, ch):
        n = to_count(n)
        if n > 255:
            raise NumericOverflowError()
        if isinstance(ch, str):
            if not ch:
                raise IllegalQuantityError()
            ch = ch[0]
        else:
            ch = chr(to_count(ch))
        return ch * n

    def fn_date(self):
        return datetime.now().strftime("%m-%d-%Y")

    def fn_time(self):
        return datetime.now().strftime("%H:%M:%S")

    # Print position

    def fn_pos(self, x=0.0):
        return float(self.column())

    def fn_spc(self, x):
        n = to_count(x)
        if n > 255:
            raise NumericOverflowError()
        return " " * n

    def fn_tab(self, x):
        tab = to_integer(x)
        if tab < -255 or tab > 255:
            raise NumericOverflowError()
        column = self.column()
        if tab < 0:
            width = -tab
            return " " * (width - column % width)
        if tab > column:
            return " " * (tab - column)
        return ""
