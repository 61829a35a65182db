import bisect
import logging

import nodes
from errors import BasicError, DirectStatementInFileError, IllegalQuantityError
from lexer import render
from parser import MAX_LINE_NUMBER

logger = logging.getLogger(__name__)


def compile_statements(statements):
    """Flatten a line's statements into straight-line code.

    An IF becomes an IfJump followed by its THEN statements; with an ELSE a
    Jump skips the ELSE statements. Jump targets index into the returned list;
    a target of None or len(code) means "continue with the next line".
    """
    code = []
    for statement in statements:
        _emit(code, statement)
    return code


def _emit(code, statement):
    if not isinstance(statement, nodes.If):
        code.append(statement)
        return
    jump = nodes.IfJump(statement.condition)
    jump.column = statement.column
    code.append(jump)
    for inner in statement.then_branch:
        _emit(code, inner)
    if statement.else_branch:
        skip = nodes.Jump()
        skip.column = statement.column
        code.append(skip)
        jump.target = len(code)
        for inner in statement.else_branch:
            _emit(code, inner)
        skip.target = len(code)


class ProgramLine:
    def __init__(self, number, source, statements):
        self.number = number
        self.source = source
        self.statements = statements
        self.code = compile_statements(statements)

    def __str__(self):
        return "%d %s" % (self.number, self.source)


class Program:
    """Line-numbered program text, kept sorted by line number."""

    def __init__(self):
        self.clear()

    def clear(self):
        self.numbers = []
        self.lines = {}
        self._data = None

    def __len__(self):
        return len(self.numbers)

    def __contains__(self, number):
        return number in self.lines

    def get(self, number):
        return self.lines.get(number)

    def insert_or_replace(self, number, source, statements):
        if not statements:
            return self.delete(number)
        if number not in self.lines:
            bisect.insort(self.numbers, number)
        self.lines[number] = ProgramLine(number, source, statements)
        self._data = None
        return True

    def delete(self, number):
        if number not in self.lines:
            return False
        del self.lines[number]
        self.numbers.pop(bisect.bisect_left(self.numbers, number))
        self._data = None
        return True

    def delete_range(self, start=None, end=None):
        doomed = [number for number, _ in self.list(start, end)]
        for number in doomed:
            self.delete(number)
        return len(doomed)

    def list(self, start=None, end=None):
        lo = 0 if start is None else bisect.bisect_left(self.numbers, start)
        hi = len(self.numbers) if end is None else bisect.bisect_right(self.numbers, end)
        for number in self.numbers[lo:hi]:
            yield number, self.lines[number].source

    def listing(self, start=None, end=None):
        return ["%d %s" % (number, source) for number, source in self.list(start, end)]

    def lowest_line(self):
        return self.numbers[0] if self.numbers else None

    def next_line(self, number):
        index = bisect.bisect_right(self.numbers, number)
        if index < len(self.numbers):
            return self.numbers[index]
        return None

    def data_items(self):
        """Every DATA item in program order as (line_number, text, quoted)."""
        if self._data is None:
            self._data = []
            for number in self.numbers:
                for statement in self.lines[number].code:
                    if isinstance(statement, nodes.Data):
                        for text, quoted in statement.items:
                            self._data.append((number, text, quoted))
        return self._data

    def load_text(self, text, parser):
        """Replace the program with the numbered lines in text.

        Nothing changes unless every line parses.
        """
        loaded = Program()
        for index, raw in enumerate(text.splitlines()):
            if not raw.strip():
                continue
            try:
                number, statements, source = parser.parse_source(raw)
            except BasicError as e:
                e.detail = "In line %d of the file." % (index + 1)
                raise
            if number is None:
                raise DirectStatementInFileError("In line %d of the file." % (index + 1))
            loaded.insert_or_replace(number, source, statements)
        self.numbers, self.lines, self._data = loaded.numbers, loaded.lines, None
        logger.info("loaded %d lines", len(self.numbers))
        return len(self.numbers)

    def renumber(self, parser, new_start=None, old_start=None, step=None):
        """RENUM: the lines from old_start on get numbers from new_start by step.

        Line numbers written after GOTO, GOSUB, THEN, ELSE, RESTORE and RUN
        follow their lines. Nothing changes if the new numbers would not fit.
        """
        new_start = 10 if new_start is None else new_start
        old_start = 0 if old_start is None else old_start
        step = 10 if step is None else step
        moving = [number for number in self.numbers if number >= old_start]
        kept = [number for number in self.numbers if number < old_start]
        if step < 1:
            raise IllegalQuantityError()
        if not moving:
            return 0
        if new_start + (len(moving) - 1) * step > MAX_LINE_NUMBER or \
                kept and new_start <= kept[-1]:
            raise IllegalQuantityError()
        mapping = dict((old, new_start + index * step) for index, old in enumerate(moving))
        renumbered = Program()
        for number in self.numbers:
            tokens = parser.lexer.tokenize(self.lines[number].source)
            self._renumber_references(tokens, mapping, number)
            new_number = mapping.get(number, number)
            _, statements, source = parser.parse_source("%d %s" % (new_number, render(tokens)))
            renumbered.insert_or_replace(new_number, source, statements)
        self.numbers, self.lines, self._data = renumbered.numbers, renumbered.lines, None
        logger.info("renumbered %d lines from %d", len(moving), new_start)
        return len(moving)

    def _renumber_references(self, tokens, mapping, line):
        # 'list' after GOTO and GOSUB (ON ... GOTO a,b,c), 'one' after the rest
        state = None
        for token in tokens:
            if state in ('list', 'one') and token.type == 'NUMBER':
                target = int(token.value)
                if target in mapping:
                    token.text = str(mapping[target])
                elif target not in self.lines:
                    logger.warning("line %d refers to missing line %d", line, target)
                state = 'more' if state == 'list' else None
            elif state == 'more' and token.type == 'COMMA':
                state = 'list'
            elif token.type in ('GOTO', 'GOSUB'):
                state = 'list'
            elif token.type in ('THEN', 'ELSE', 'RESTORE', 'RUN'):
                state = 'one'
            else:
                state = None

