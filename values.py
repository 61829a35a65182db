import math
import re
import struct
import logging

from errors import (TypeMismatchError, NumericOverflowError, IllegalQuantityError,
                    SubscriptOutOfRangeError, RedimensionedArrayError, OutOfMemoryError,
                    StringTooLongError)

logger = logging.getLogger(__name__)

SINGLE_MAX = 3.4028234663852886e38
INTEGER_MIN, INTEGER_MAX = -32768, 32767
MAX_STRING = 255
DEFAULT_BOUND = 10

NUMBER_RE = re.compile(r'[+\-]?(?:\d+\.?\d*|\.\d+)(?:[EeDd][+\-]?\d+)?$')


class Double(float):
    """A double-precision number. Arithmetic with one stays in double."""
    __slots__ = ()

    def __repr__(self):
        return 'Double(%r)' % float(self)


def is_string_name(name):
    return name.endswith('$')


def is_integer_name(name):
    return name.endswith('%')


def is_double_name(name):
    return name.endswith('#')


def default_for(name):
    if is_string_name(name):
        return ""
    return Double(0.0) if is_double_name(name) else 0.0


def number(value):
    if isinstance(value, str):
        raise TypeMismatchError()
    return value


def string(value):
    if not isinstance(value, str):
        raise TypeMismatchError()
    return value


def to_single(value):
    """Round a Python float to single precision, the machine's default real type."""
    value = number(value)
    if math.isnan(value):
        raise IllegalQuantityError()
    if math.isinf(value) or abs(value) > SINGLE_MAX:
        raise NumericOverflowError()
    try:
        result = struct.unpack('f', struct.pack('f', value))[0]
    except OverflowError:
        raise NumericOverflowError()
    return result + 0.0  # folds -0.0 into 0.0


def to_double(value):
    value = number(value)
    if math.isnan(value):
        raise IllegalQuantityError()
    if math.isinf(value):
        raise NumericOverflowError()
    return Double(value + 0.0)


def precision_of(*values):
    """to_double when any operand is a Double, else to_single."""
    if any(isinstance(value, Double) for value in values):
        return to_double
    return to_single


def to_integer(value):
    """Round to nearest and check the 16-bit integer range."""
    value = number(value)
    if math.isnan(value) or math.isinf(value):
        raise NumericOverflowError()
    result = math.floor(value + 0.5)
    if result < INTEGER_MIN or result > INTEGER_MAX:
        raise NumericOverflowError()
    return result


def to_count(value):
    """A non-negative integer argument such as a string length."""
    result = to_integer(value)
    if result < 0:
        raise IllegalQuantityError()
    return result


def truth(value):
    return number(value) != 0


def from_bool(flag):
    return -1.0 if flag else 0.0


def format_number(value):
    """STR$ form: sign position (blank or '-') then up to 7 significant digits,
    16 for a double."""
    text = '%.*G' % (16 if isinstance(value, Double) else 7, value)
    if 'E' in text:
        mantissa, exponent = text.split('E')
        if '.' in mantissa:
            mantissa = mantissa.rstrip('0').rstrip('.')
        text = '%sE%s%02d' % (mantissa, exponent[0], abs(int(exponent)))
    if text in ('-0', '0'):
        text = '0'
    return text if text.startswith('-') else ' ' + text


def parse_number(text, precise=False):
    """Parse numeric text the way INPUT, READ and VAL see it. Returns None on failure."""
    text = text.strip()
    if not NUMBER_RE.match(text):
        return None
    value = float(text.upper().replace('D', 'E'))
    return to_double(value) if precise else to_single(value)


def check_string(value):
    if len(value) > MAX_STRING:
        raise StringTooLongError()
    return value


def coerce(name, value):
    """Convert a value for storage in the variable called name."""
    if is_string_name(name):
        return check_string(string(value))
    if is_integer_name(name):
        return float(to_integer(value))
    if is_double_name(name):
        return to_double(value)
    return to_single(value)


class BasicArray:
    def __init__(self, name, bounds):
        self.name = name
        self.bounds = bounds  # inclusive upper bound per dimension
        self.size = 1
        for bound in bounds:
            self.size *= bound + 1
        self.values = [default_for(name)] * self.size

    def offset(self, indices):
        if len(indices) != len(self.bounds):
            raise SubscriptOutOfRangeError()
        offset = 0
        for index, bound in zip(indices, self.bounds):
            if index < 0 or index > bound:
                raise SubscriptOutOfRangeError()
            offset = offset * (bound + 1) + index
        return offset


class VariableStore:
    """Scalars and arrays, each keyed by name including its type sigil.

    Arrays and scalars are separate namespaces: A and A(1) never collide.
    A name without a sigil takes the type DEFINT/DEFSNG/DEFDBL/DEFSTR gave its
    first letter, so after DEFSTR S the names ST and ST$ are one variable.
    `!` is the single-precision sigil and is dropped from the key.
    Every stored value counts toward memory_limit.
    """

    def __init__(self, memory_limit=65535):
        self.memory_limit = memory_limit
        self.clear()

    def clear(self):
        self.scalars = {}
        self.arrays = {}
        self.deftypes = {}
        self.used = 0

    def resolve(self, name):
        if not name:
            return name
        if name[-1] == '!':
            return name[:-1]
        if name[-1] in '$%#':
            return name
        return name + self.deftypes.get(name[0], '')

    def type_of(self, name):
        """The sigil the name resolves to: '$', '%', '#' or '' for single."""
        key = self.resolve(name)
        return key[-1] if key and key[-1] in '$%#' else ''

    def deftype(self, letters, sigil):
        for letter in letters:
            if sigil:
                self.deftypes[letter] = sigil
            else:
                self.deftypes.pop(letter, None)

    def _reserve(self, count):
        if self.used + count > self.memory_limit:
            raise OutOfMemoryError()
        self.used += count

    def get(self, name):
        key = self.resolve(name)
        return self.scalars.get(key, default_for(key))

    def set(self, name, value):
        key = self.resolve(name)
        value = coerce(key, value)
        if key not in self.scalars:
            self._reserve(1)
        self.scalars[key] = value

    def delete(self, name):
        key = self.resolve(name)
        if key in self.scalars:
            del self.scalars[key]
            self.used -= 1

    def snapshot(self, name):
        """Current value of a scalar, or None when it was never set."""
        return self.scalars.get(self.resolve(name))

    def restore(self, name, value):
        if value is None:
            self.delete(name)
        else:
            self.scalars[self.resolve(name)] = value

    def dim(self, name, bounds):
        key = self.resolve(name)
        if key in self.arrays:
            raise RedimensionedArrayError()
        checked = []
        for bound in bounds:
            bound = to_integer(bound)
            if bound < 0:
                raise IllegalQuantityError()
            checked.append(bound)
        size = 1
        for bound in checked:
            size *= bound + 1
        self._reserve(size)
        self.arrays[key] = BasicArray(key, checked)
        logger.debug("dimensioned %s%s", key, tuple(checked))
        return self.arrays[key]

    def _array(self, name, dimensions):
        array = self.arrays.get(self.resolve(name))
        if array is None:
            array = self.dim(name, [DEFAULT_BOUND] * dimensions)
        return array

    def _indices(self, indices):
        result = []
        for index in indices:
            index = to_integer(index)
            if index < 0:
                raise SubscriptOutOfRangeError()
            result.append(index)
        return result

    def get_element(self, name, indices):
        indices = self._indices(indices)
        array = self._array(name, len(indices))
        return array.values[array.offset(indices)]

    def set_element(self, name, indices, value):
        indices = self._indices(indices)
        array = self._array(name, len(indices))
        value = coerce(array.name, value)
        array.values[array.offset(indices)] = value

    def erase(self, name):
        array = self.arrays.pop(self.resolve(name), None)
        if array is None:
            raise IllegalQuantityError()
        self.used -= array.size

    def erase_all(self):
        for name in list(self.arrays):
            self.used -= self.arrays.pop(name).size
