import re

from errors import BasicSyntaxError, NumericOverflowError
from values import to_double, to_integer, to_single


class Token:
    def __init__(self, type, value, column=None, text=None):
        self.type = type
        self.value = value
        self.column = column
        self.text = text if text is not None else str(value)
        # column just past the token as it was typed
        self.end = column + len(self.text) if column is not None else None

    def __eq__(self, other):
        return isinstance(other, Token) and (self.type, self.value) == (other.type, other.value)

    def __repr__(self):
        return f"Token({self.type}, {self.value!r})"


STATEMENT_KEYWORDS = {
    'CLEAR', 'CLS', 'CONT', 'DATA', 'DEF', 'DEFDBL', 'DEFINT', 'DEFSNG', 'DEFSTR',
    'DELETE', 'DIM', 'ELSE', 'END', 'ERASE', 'FOR', 'GOSUB', 'GOTO', 'IF', 'INPUT',
    'LET', 'LIST', 'LOAD', 'NEW', 'NEXT', 'ON', 'PRINT', 'READ', 'REM', 'RENUM',
    'RESTORE', 'RETURN', 'RUN', 'SAVE', 'STEP', 'STOP', 'SWAP', 'THEN', 'TO', 'TROFF',
    'TRON', 'WEND', 'WHILE', 'FN',
}

OPERATOR_KEYWORDS = {'AND', 'OR', 'XOR', 'NOT', 'MOD'}

FUNCTION_KEYWORDS = {
    'ABS', 'ASC', 'ATN', 'CDBL', 'CHR$', 'CINT', 'COS', 'CSNG', 'DATE$', 'EXP',
    'FIX', 'HEX$', 'INSTR', 'INT', 'LEFT$', 'LEN', 'LOG', 'MID$', 'OCT$', 'POS',
    'RIGHT$', 'RND', 'SGN', 'SIN', 'SPC', 'SQR', 'STR$', 'STRING$', 'TAB', 'TAN',
    'TIME$', 'VAL',
}

KEYWORDS = STATEMENT_KEYWORDS | OPERATOR_KEYWORDS | FUNCTION_KEYWORDS

# DEF is a keyword on its own, so DEFINT and friends are found by looking ahead
LONGER_KEYWORDS = {'DEF': ('INT', 'SNG', 'DBL', 'STR')}

IDENTIFIER_TYPES = ('ID_NUM', 'ID_INT', 'ID_STR')

# More digits than a single holds make a literal double
SINGLE_DIGITS = 7


class Lexer:
    """Splits one line of BASIC into tokens.

    Keywords are recognised the way the old ROM tokenisers did it: letters are
    gathered one at a time and the moment the run spells a keyword that keyword
    is emitted, so `FORI=1TO9` and `GOTO100` need no blanks.
    """

    def __init__(self):
        # Token specification
        self.token_specification = [
            ('NUMBER',    r'(?:\d+\.?\d*|\.\d+)(?:[EeDd][+\-]?\d*)?[!#%]?'),
            ('STRING',    r'"[^"]*"?'),             # String literal, maybe unterminated
            ('WORD',      r'[A-Za-z]'),             # Keyword or identifier start
            ('RELOP',     r'<=|>=|<>|=<|=>|><|<|>'),
            ('ASSIGN',    r'='),
            ('OP',        r'[+\-*/^\\]'),
            ('QUESTION',  r'\?'),                   # PRINT shorthand
            ('APOSTROPHE', r"'"),                   # REM shorthand
            ('LPAREN',    r'\('),
            ('RPAREN',    r'\)'),
            ('COMMA',     r','),
            ('SEMICOLON', r';'),
            ('COLON',     r':'),
            ('SKIP',      r'[ \t]+'),
            ('MISMATCH',  r'.'),
        ]
        self.regex = re.compile('|'.join('(?P<%s>%s)' % pair for pair in self.token_specification))
        self.keywords = KEYWORDS
        self.relop_aliases = {'=<': '<=', '=>': '>=', '><': '<>'}

    def tokenize(self, text):
        text = text.rstrip('\r\n')
        tokens = []
        pos = 0
        while pos < len(text):
            mo = self.regex.match(text, pos)
            kind = mo.lastgroup
            value = mo.group()
            column = pos + 1
            pos = mo.end()
            if kind == 'SKIP':
                continue
            elif kind == 'NUMBER':
                if text.startswith('.', pos):
                    raise BasicSyntaxError(column=column)
                tokens.append(Token('NUMBER', self._number(value, column), column, value))
            elif kind == 'STRING':
                if len(value) < 2 or not value.endswith('"'):
                    raise BasicSyntaxError(column=len(text) + 1)
                tokens.append(Token('STRING', value[1:-1], column, value))
            elif kind == 'WORD':
                token, pos = self._word(text, column - 1)
                tokens.append(token)
                if token.type == 'REM':
                    tokens.append(Token('REMARK', text[pos:], pos + 1))
                    break
                if token.type == 'DATA':
                    start = pos
                    raw, pos = self._data_text(text, pos)
                    tokens.append(Token('DATA_TEXT', raw, start + 1))
            elif kind == 'RELOP':
                tokens.append(Token('RELOP', self.relop_aliases.get(value, value), column, value))
            elif kind == 'QUESTION':
                tokens.append(Token('PRINT', '?', column))
            elif kind == 'APOSTROPHE':
                tokens.append(Token('REM', "'", column))
                tokens.append(Token('REMARK', text[pos:], pos + 1))
                break
            elif kind == 'MISMATCH':
                raise BasicSyntaxError(column=column)
            else:
                tokens.append(Token(kind, value, column))
        return self._collapse_go(tokens)

    def _number(self, text, column):
        """Value of a numeric literal: a trailing E or D with no digits is ignored,
        `!` `#` `%` force single, double or integer."""
        text = text.upper()
        suffix = text[-1] if text[-1] in '!#%' else ''
        body = text.rstrip('!#%')
        if body.endswith(('E+', 'E-', 'D+', 'D-')):
            raise BasicSyntaxError(column=column)
        mantissa = re.split('[ED]', body)[0]
        value = float(body.replace('D', 'E').rstrip('E'))
        try:
            if suffix == '%':
                return float(to_integer(value))
            digits = sum(c.isdigit() for c in mantissa)
            if suffix == '#' or 'D' in body or (suffix != '!' and digits > SINGLE_DIGITS):
                return to_double(value)
            return to_single(value)
        except NumericOverflowError:
            raise BasicSyntaxError(column=column)

    def _word(self, text, start):
        word = ''
        digit = False
        pos = start
        while pos < len(text):
            c = text[pos].upper()
            word += c
            pos += 1
            if c.isdigit():
                digit = True
            if word in self.keywords:
                for tail in LONGER_KEYWORDS.get(word, ()):
                    if text[pos:pos + len(tail)].upper() == tail:
                        word += tail
                        pos += len(tail)
                        break
                return Token(word, word, start + 1, text[start:pos]), pos
            if c == '$':
                return Token('ID_STR', word, start + 1), pos
            if c == '%':
                return Token('ID_INT', word, start + 1), pos
            if c in '!#':
                return Token('ID_NUM', word, start + 1), pos
            nxt = text[pos] if pos < len(text) else ''
            if nxt.isascii() and nxt.isalpha():
                if digit:
                    break
                continue
            if nxt.isascii() and nxt.isdigit() or nxt in ('$', '%', '!', '#'):
                continue
            break
        return Token('ID_NUM', word, start + 1), pos

    def _data_text(self, text, pos):
        # DATA runs to the first colon that is not inside quotes
        in_quote = False
        end = pos
        while end < len(text):
            c = text[end]
            if c == '"':
                in_quote = not in_quote
            elif c == ':' and not in_quote:
                break
            end += 1
        return text[pos:end], end

    def _collapse_go(self, tokens):
        result = []
        for token in tokens:
            if result and result[-1].type == 'ID_NUM' and result[-1].value == 'GO':
                if token.type == 'TO' or token.type == 'ID_NUM' and token.value == 'SUB':
                    keyword = 'GOTO' if token.type == 'TO' else 'GOSUB'
                    merged = Token(keyword, keyword, result[-1].column)
                    merged.end = token.end
                    result[-1] = merged
                    continue
            result.append(token)
        return result


def spelling(token):
    """How a token reads in a listing."""
    if token.type == 'NUMBER':
        return token.text.upper()
    if token.type in IDENTIFIER_TYPES:
        return token.value
    if token.type == 'REM':
        return token.value
    if token.type in KEYWORDS:
        return token.type
    return token.text


def _is_word(token):
    if token.type in ('NUMBER', 'STRING') or token.type in IDENTIFIER_TYPES:
        return True
    if token.type == 'DATA_TEXT':
        first = token.value[:1]
        return first != '' and (first.isalnum() or first in '".')
    return token.type in STATEMENT_KEYWORDS or token.type in FUNCTION_KEYWORDS


def render(tokens, start=1):
    """Canonical text of a tokenized line.

    Words come out upper case, `?` as PRINT and `GO TO` as GOTO. Blanks typed
    between tokens are kept and two words that touch get one blank between
    them; `FN` stays glued to its name. `start` is the column the text began at.
    """
    out = []
    previous = None
    for token in tokens:
        gap = token.column - (previous.end if previous is not None else start)
        if gap > 0:
            out.append(' ' * gap)
        elif previous is not None and previous.type != 'FN' and \
                _is_word(previous) and _is_word(token):
            out.append(' ')
        out.append(spelling(token))
        previous = token
    return ''.join(out).rstrip()
