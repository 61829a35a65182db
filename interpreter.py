import math
import logging
import threading

import nodes
from config import Config
from errors import (BasicError, BreakCondition, CantContinueError, DivisionByZeroError,
                    ErrorReporter, ForWithoutNextError, IllegalDirectError, IllegalQuantityError,
                    LineBufferOverflowError, NextWithoutForError, NumericOverflowError,
                    OutOfDataError, RedoFromStart, ReturnWithoutGosubError, StackOverflowError,
                    TypeMismatchError, UndefinedFunctionError, UndefinedLineError,
                    WendWithoutWhileError, WhileWithoutWendError)
from file_manager import FileManager
from functions import Builtins, Rng
from parser import Parser
from patcher import PatchRetriever
from program import Program, compile_statements
from values import (VariableStore, check_string, coerce, format_number, from_bool, number,
                    parse_number, precision_of, string, to_count, to_double, to_integer,
                    to_single, truth)

logger = logging.getLogger(__name__)

READY, RUNNING, ERROR, HALTED = 'READY', 'RUNNING', 'ERROR', 'HALTED'

MAX_LINE_LENGTH = 255
ZONE_WIDTH = 14


class ExecutionFinished(Exception): pass


class ExecutionContext:
    """Stacks and cursors of one RUN. Thrown away by RUN, NEW and CLEAR."""

    def __init__(self):
        self.gosub_stack = []   # (return position, for depth, while depth)
        self.for_stack = []     # {'var', 'limit', 'step', 'position'}
        self.while_stack = []   # position of the WHILE statement
        self.fn_depth = 0
        self.data_cursor = 0

    def depth(self):
        return len(self.gosub_stack) + len(self.for_stack) + len(self.while_stack) + self.fn_depth


class BasicInterpreter:
    """The language engine: program store, variables and the statement loop.

    A position is (line_number, index) into that line's compiled code, with
    line_number None for the immediate-mode line being executed.
    """

    def __init__(self, io_handler=None, config=None, file_manager=None, retriever=None):
        self.io_handler = io_handler  # Can be None for stdout/stdin fallback
        self.config = config or Config()
        self.parser = Parser()
        self.program = Program()
        self.variables = VariableStore(self.config.memory_limit)
        self.rng = Rng()
        self.builtins = Builtins(self.rng, column=lambda: self.print_col)
        self.file_manager = file_manager or FileManager(self.config)
        self.retriever = retriever or PatchRetriever(self.config, file_manager=self.file_manager)
        self.reporter = ErrorReporter(self._write_raw, column=lambda: self.print_col)
        self.stack_limit = self.config.stack_limit
        self.break_event = threading.Event()

        self.state = READY
        self.print_col = 0
        self.trace = False
        self.trace_line = None
        self.functions = {}
        self.context = ExecutionContext()
        self.direct_code = []
        self.position = None
        self.current = None
        self.cont_position = None
        self.last_error = None

        self.statement_handlers = {
            nodes.Let: self._exec_let,
            nodes.Print: self._exec_print,
            nodes.Input: self._exec_input,
            nodes.IfJump: self._exec_if_jump,
            nodes.Jump: self._exec_jump,
            nodes.For: self._exec_for,
            nodes.Next: self._exec_next,
            nodes.Goto: self._exec_goto,
            nodes.Gosub: self._exec_gosub,
            nodes.On: self._exec_on,
            nodes.Return: self._exec_return,
            nodes.Dim: self._exec_dim,
            nodes.Data: self._exec_nothing,
            nodes.Read: self._exec_read,
            nodes.Restore: self._exec_restore,
            nodes.End: self._exec_end,
            nodes.Stop: self._exec_stop,
            nodes.Rem: self._exec_nothing,
            nodes.While: self._exec_while,
            nodes.Wend: self._exec_wend,
            nodes.Def: self._exec_def,
            nodes.DefType: self._exec_deftype,
            nodes.MidAssign: self._exec_mid_assign,
            nodes.Swap: self._exec_swap,
            nodes.Erase: self._exec_erase,
            nodes.Clear: self._exec_clear,
            nodes.Cls: self._exec_cls,
            nodes.Cont: self._exec_cont,
            nodes.Tron: self._exec_tron,
            nodes.Troff: self._exec_troff,
            nodes.New: self._exec_new,
            nodes.Run: self._exec_run,
            nodes.List: self._exec_list,
            nodes.Delete: self._exec_delete,
            nodes.Renum: self._exec_renum,
            nodes.Load: self._exec_load,
            nodes.Save: self._exec_save,
        }
        self.expression_handlers = {
            nodes.Literal: lambda expr: expr.value,
            nodes.Variable: lambda expr: self.variables.get(expr.name),
            nodes.ArrayElement: self._eval_element,
            nodes.UnaryOp: self._eval_unary,
            nodes.BinaryOp: self._eval_binary,
            nodes.FunctionCall: self._eval_function,
            nodes.FnCall: self._eval_fn,
        }

    # Terminal collaborator

    def _write_raw(self, text):
        if self.io_handler:
            self.io_handler.write(text)
        else:
            print(text, end="", flush=True)

    def _write(self, text):
        self._write_raw(text)
        self.print_col = self._advance_column(self.print_col, text)

    def _advance_column(self, column, text):
        if '\n' in text:
            return len(text) - text.rindex('\n') - 1
        return column + len(text)

    def _read_line(self, prompt):
        if self.io_handler:
            return self.io_handler.input(prompt)
        return input(prompt)

    def ready_prompt(self):
        """Text to show when control is back at the command prompt."""
        text = "\n" if self.print_col > 0 else ""
        self.print_col = 0
        return text + self.config.prompt + "\n" if self.config.prompt else text

    def _report(self, error):
        self.last_error = error
        self.reporter.report(error)
        self.print_col = 0

    def signal_break(self):
        """Ask the running program to stop before its next statement. Thread safe."""
        self.break_event.set()

    # Command surface

    def enter(self, text):
        """Handle one line typed at the prompt.

        A numbered line edits the program; anything else runs at once.
        Returns True when something ran or an error was reported.
        """
        if len(text) > MAX_LINE_LENGTH:
            self._report(LineBufferOverflowError())
            return True
        try:
            number, statements, source = self.parser.parse_source(text)
        except BasicError as e:
            self._report(e)
            return True
        if number is not None:
            self.program.insert_or_replace(number, source, statements)
            self.cont_position = None
            return False
        if not statements:
            return False
        self.direct_code = compile_statements(statements)
        self.position = (None, 0)
        self._execute()
        return True

    def load_program(self, text):
        """Replace the program with text (batch load). Returns False on error."""
        try:
            self._replace_program(text)
        except BasicError as e:
            self._report(e)
            return False
        return True

    def run(self, line=None):
        """RUN: fresh variables and stacks, start at line (default lowest)."""
        self.direct_code = []
        try:
            self._start(line)
        except ExecutionFinished:
            return
        except BasicError as e:
            self._report(e)
            return
        self._execute()

    # Reset levels

    def _reset_context(self):
        self.context = ExecutionContext()
        self.cont_position = None
        self.rng.reseed()

    def _clear_variables(self):
        self.variables.clear()
        self._reset_context()

    def _new(self):
        self.program.clear()
        self.functions = {}
        self.trace = False
        self._clear_variables()

    def _replace_program(self, text):
        self.program.load_text(text, self.parser)
        self.functions = {}
        self._clear_variables()

    def _start(self, line=None, column=None):
        self.functions = {}
        self._clear_variables()
        if line is None:
            line = self.program.lowest_line()
            if line is None:
                raise ExecutionFinished()
        elif line not in self.program:
            raise UndefinedLineError(column=column)
        logger.debug("RUN from line %s", line)
        self.position = (line, 0)

    # Statement loop

    def _code_at(self, line):
        if line is None:
            return self.direct_code
        return self.program.get(line).code

    def _execute(self):
        self.state = RUNNING
        self.break_event.clear()
        self.trace_line = None
        try:
            self._loop()
            self.state = HALTED
        except ExecutionFinished:
            self.state = HALTED
        except BreakCondition as e:
            line, _ = self.position
            self.cont_position = self.position if line is not None else None
            self.state = HALTED
            self._report(e)
        except BasicError as e:
            self.cont_position = None
            self.state = ERROR
            logger.debug("runtime error at %s", self.current)
            self._report(e)
        finally:
            if self.state == RUNNING:
                self.cont_position = None
            logger.debug("execution stopped (%s) at %s", self.state, self.current)
            self.state = READY

    def _loop(self):
        while True:
            line, index = self.position
            code = self._code_at(line)
            if index >= len(code):
                if line is None:
                    return
                following = self.program.next_line(line)
                if following is None:
                    self.cont_position = None
                    return
                self.position = (following, 0)
                continue
            if self.break_event.is_set():
                self.break_event.clear()
                raise BreakCondition().in_line(line) if line is not None else BreakCondition()
            if self.trace and line is not None and line != self.trace_line:
                self._write("[%d]" % line)
            self.trace_line = line
            statement = code[index]
            self.current = (line, index)
            self.position = (line, index + 1)
            try:
                self.statement_handlers[type(statement)](statement)
            except RecursionError:
                raise StackOverflowError().in_line(line) if line is not None else StackOverflowError()
            except BasicError as e:
                if line is not None:
                    e.in_line(line)
                raise

    def _check_stack(self):
        if self.context.depth() >= self.stack_limit:
            raise StackOverflowError()

    def _goto(self, number, column=None):
        if number not in self.program:
            raise UndefinedLineError(column=column)
        self.position = (number, 0)

    def _scan_forward(self):
        """Yield (position, statement) from the current position onward."""
        line, index = self.position
        while True:
            code = self._code_at(line)
            for i in range(index, len(code)):
                yield (line, i), code[i]
            if line is None:
                return
            line = self.program.next_line(line)
            if line is None:
                return
            index = 0

    # Statements

    def _exec_nothing(self, stmt):
        pass

    def _exec_let(self, stmt):
        self._assign(stmt.target, self.evaluate(stmt.expr))

    def _assign(self, target, value):
        if isinstance(target, nodes.ArrayElement):
            indices = [self.evaluate(index) for index in target.indices]
            self.variables.set_element(target.name, indices, value)
        else:
            self.variables.set(target.name, value)

    def _exec_print(self, stmt):
        start_col = self.print_col
        out = []
        newline = True
        try:
            for item in stmt.items:
                if item == ';':
                    newline = False
                    continue
                if item == ',':
                    newline = False
                    text = " " * (ZONE_WIDTH - self.print_col % ZONE_WIDTH)
                else:
                    newline = True
                    value = self.evaluate(item)
                    text = value if isinstance(value, str) else format_number(value) + " "
                out.append(text)
                self.print_col = self._advance_column(self.print_col, text)
        finally:
            self.print_col = start_col
        if newline:
            out.append("\n")
        self._write("".join(out))

    def _exec_input(self, stmt):
        prompt = stmt.prompt + ("? " if stmt.question else "")
        while True:
            try:
                reply = self._read_line(prompt)
            except KeyboardInterrupt:
                self.position = self.current
                raise BreakCondition()
            self.print_col = 0
            try:
                values = self._parse_reply(reply, stmt.targets)
            except RedoFromStart as redo:
                self._write(redo.text + "\n")
                continue
            for target, value in zip(stmt.targets, values):
                self._assign(target, value)
            return

    def _parse_reply(self, reply, targets):
        if len(targets) == 1:
            items = [reply]
        else:
            items = split_reply(reply)
            if len(items) != len(targets):
                raise RedoFromStart()
        values = []
        for target, item in zip(targets, items):
            item = item.strip()
            kind = self.variables.type_of(target.name)
            if kind == '$':
                if len(item) >= 2 and item.startswith('"') and item.endswith('"'):
                    item = item[1:-1]
                values.append(item)
            else:
                value = parse_number(item, precise=kind == '#') if item else 0.0
                if value is None:
                    raise RedoFromStart()
                values.append(value)
        return values

    def _exec_if_jump(self, stmt):
        if not truth(self.evaluate(stmt.condition)):
            self._jump_within_line(stmt.target)

    def _exec_jump(self, stmt):
        self._jump_within_line(stmt.target)

    def _jump_within_line(self, target):
        line, _ = self.position
        if target is None:
            target = len(self._code_at(line))
        self.position = (line, target)

    def _exec_goto(self, stmt):
        self._goto(stmt.line, stmt.line_column)

    def _exec_gosub(self, stmt):
        if stmt.line not in self.program:
            raise UndefinedLineError(column=stmt.line_column)
        self._check_stack()
        self.context.gosub_stack.append(
            (self.position, len(self.context.for_stack), len(self.context.while_stack)))
        self._goto(stmt.line)

    def _exec_return(self, stmt):
        if not self.context.gosub_stack:
            raise ReturnWithoutGosubError()
        position, for_depth, while_depth = self.context.gosub_stack.pop()
        del self.context.for_stack[for_depth:]
        del self.context.while_stack[while_depth:]
        self.position = position

    def _exec_on(self, stmt):
        selector = to_integer(self.evaluate(stmt.selector))
        if selector < 0 or selector > 255:
            raise IllegalQuantityError()
        if selector == 0 or selector > len(stmt.targets):
            return
        target = stmt.targets[selector - 1]
        column = stmt.columns[selector - 1]
        if stmt.gosub:
            self._exec_gosub(nodes.Gosub(target, column))
        else:
            self._goto(target, column)

    def _exec_for(self, stmt):
        var = self.variables.resolve(stmt.var)
        fit = to_double if self.variables.type_of(var) == '#' else to_single
        self.variables.set(var, self.evaluate(stmt.start))
        limit = fit(self.evaluate(stmt.limit))
        step = fit(self.evaluate(stmt.step)) if stmt.step is not None else 1.0
        for_stack = self.context.for_stack
        for i, frame in enumerate(for_stack):
            if frame['var'] == var:
                del for_stack[i:]
                break
        value = self.variables.get(var)
        if (step >= 0 and value > limit) or (step < 0 and value < limit):
            self._skip_to_next(var, stmt.column)
            return
        self._check_stack()
        for_stack.append({'var': var, 'limit': limit, 'step': step,
                          'position': self.position})

    def _skip_to_next(self, var, column=None):
        depth = 0
        for (line, index), statement in self._scan_forward():
            if isinstance(statement, nodes.For):
                depth += 1
            elif isinstance(statement, nodes.Next):
                if depth > 0:
                    depth -= 1
                elif statement.var is None or self.variables.resolve(statement.var) == var:
                    self.position = (line, index + 1)
                    return
        raise ForWithoutNextError(column=column)

    def _exec_next(self, stmt):
        for_stack = self.context.for_stack
        if not for_stack:
            raise NextWithoutForError(column=stmt.column)
        if stmt.var is not None:
            var = self.variables.resolve(stmt.var)
            for i in range(len(for_stack) - 1, -1, -1):
                if for_stack[i]['var'] == var:
                    del for_stack[i + 1:]
                    break
            else:
                raise NextWithoutForError(column=stmt.column)
        frame = for_stack[-1]
        self.variables.set(frame['var'], self.variables.get(frame['var']) + frame['step'])
        value = self.variables.get(frame['var'])
        if (frame['step'] >= 0 and value <= frame['limit']) or \
           (frame['step'] < 0 and value >= frame['limit']):
            self.position = frame['position']
        else:
            for_stack.pop()

    def _exec_while(self, stmt):
        here = self.current
        while_stack = self.context.while_stack
        active = bool(while_stack) and while_stack[-1] == here
        if truth(self.evaluate(stmt.condition)):
            if not active:
                self._check_stack()
                while_stack.append(here)
            return
        if active:
            while_stack.pop()
        depth = 0
        for (line, index), statement in self._scan_forward():
            if isinstance(statement, nodes.While):
                depth += 1
            elif isinstance(statement, nodes.Wend):
                if depth == 0:
                    self.position = (line, index + 1)
                    return
                depth -= 1
        raise WhileWithoutWendError()

    def _exec_wend(self, stmt):
        if not self.context.while_stack:
            raise WendWithoutWhileError()
        self.position = self.context.while_stack[-1]

    def _exec_dim(self, stmt):
        for name, bounds in stmt.arrays:
            self.variables.dim(name, [self.evaluate(bound) for bound in bounds])

    def _exec_read(self, stmt):
        items = self.program.data_items()
        for target in stmt.targets:
            if self.context.data_cursor >= len(items):
                raise OutOfDataError()
            _, text, quoted = items[self.context.data_cursor]
            self.context.data_cursor += 1
            kind = self.variables.type_of(target.name)
            if kind == '$':
                value = text
            elif quoted:
                raise TypeMismatchError()
            else:
                value = parse_number(text, precise=kind == '#') if text else 0.0
                if value is None:
                    raise TypeMismatchError()
            self._assign(target, value)

    def _exec_restore(self, stmt):
        if stmt.line is None:
            self.context.data_cursor = 0
            return
        if stmt.line not in self.program:
            raise UndefinedLineError(column=stmt.line_column)
        items = self.program.data_items()
        cursor = 0
        while cursor < len(items) and items[cursor][0] < stmt.line:
            cursor += 1
        self.context.data_cursor = cursor

    def _exec_end(self, stmt):
        line, _ = self.position
        self.cont_position = self.position if line is not None else None
        raise ExecutionFinished()

    def _exec_stop(self, stmt):
        raise BreakCondition()

    def _exec_def(self, stmt):
        line, _ = self.current
        if line is None:
            raise IllegalDirectError()
        self.functions[stmt.name] = stmt

    def _exec_deftype(self, stmt):
        self.variables.deftype(stmt.letters, stmt.sigil)

    def _exec_mid_assign(self, stmt):
        original = string(self.evaluate(stmt.target))
        start = to_count(self.evaluate(stmt.start))
        if start == 0:
            raise IllegalQuantityError()
        replacement = string(self.evaluate(stmt.expr))
        if stmt.length is not None:
            replacement = replacement[:to_count(self.evaluate(stmt.length))]
        # the string keeps its length; past the end nothing changes
        head = original[:start - 1]
        changed = head + replacement + original[len(head) + len(replacement):]
        self._assign(stmt.target, changed[:len(original)])

    def _exec_swap(self, stmt):
        if self.variables.type_of(stmt.first.name) != self.variables.type_of(stmt.second.name):
            raise TypeMismatchError()
        first = self.evaluate(stmt.first)
        second = self.evaluate(stmt.second)
        self._assign(stmt.first, second)
        self._assign(stmt.second, first)

    def _exec_erase(self, stmt):
        if not stmt.names:
            self.variables.erase_all()
        for name in stmt.names:
            self.variables.erase(name)

    def _exec_clear(self, stmt):
        self._clear_variables()

    def _exec_cls(self, stmt):
        if self.io_handler and hasattr(self.io_handler, 'clear_screen'):
            self.io_handler.clear_screen()
        self.print_col = 0

    def _exec_cont(self, stmt):
        if self.cont_position is None:
            raise CantContinueError()
        self.position = self.cont_position
        self.cont_position = None

    def _exec_tron(self, stmt):
        self.trace = True

    def _exec_troff(self, stmt):
        self.trace = False

    def _exec_new(self, stmt):
        self._new()
        raise ExecutionFinished()

    def _exec_run(self, stmt):
        if stmt.filename is not None:
            name = string(self.evaluate(stmt.filename))
            self._replace_program(self.retriever.load(name, self.parser))
        self.direct_code = []
        self._start(stmt.line, stmt.line_column)

    def _exec_list(self, stmt):
        for text in self.program.listing(stmt.start, stmt.end):
            self._write(text + "\n")

    def _require_direct(self):
        line, _ = self.current
        if line is not None:
            raise IllegalDirectError()

    def _exec_delete(self, stmt):
        self._require_direct()
        if stmt.start is None and stmt.end is None:
            raise IllegalQuantityError()
        self.program.delete_range(stmt.start, stmt.end)
        self.cont_position = None

    def _exec_renum(self, stmt):
        self._require_direct()
        self.program.renumber(self.parser, stmt.new_start, stmt.old_start, stmt.step)
        self.cont_position = None

    def _exec_load(self, stmt):
        self._require_direct()
        name = string(self.evaluate(stmt.filename))
        self._replace_program(self.retriever.load(name, self.parser))

    def _exec_save(self, stmt):
        self._require_direct()
        name = string(self.evaluate(stmt.filename))
        self.file_manager.save_program(name, self.program.listing())

    # Expressions

    def evaluate(self, expr):
        return self.expression_handlers[type(expr)](expr)

    def _eval_element(self, expr):
        indices = [self.evaluate(index) for index in expr.indices]
        return self.variables.get_element(expr.name, indices)

    def _eval_unary(self, expr):
        value = number(self.evaluate(expr.operand))
        if expr.op == '-':
            return precision_of(value)(-value)
        if expr.op == 'NOT':
            return float(~to_integer(value))
        return value

    def _eval_binary(self, expr):
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        op = expr.op
        if op in COMPARISONS:
            if isinstance(left, str) != isinstance(right, str):
                raise TypeMismatchError()
            return from_bool(COMPARISONS[op](left, right))
        if op == '+' and isinstance(left, str) and isinstance(right, str):
            return check_string(left + right)
        left, right = number(left), number(right)
        fit = precision_of(left, right)
        if op == '+':
            return fit(left + right)
        if op == '-':
            return fit(left - right)
        if op == '*':
            return fit(left * right)
        if op == '/':
            if right == 0:
                raise DivisionByZeroError()
            return fit(left / right)
        if op == '^':
            return power(left, right, fit)
        a, b = to_integer(left), to_integer(right)
        if op == 'AND':
            return float(a & b)
        if op == 'OR':
            return float(a | b)
        if op == 'XOR':
            return float(a ^ b)
        if b == 0:
            raise DivisionByZeroError()
        quotient = abs(a) // abs(b) * (1 if (a < 0) == (b < 0) else -1)
        if op == '\\':
            return to_single(quotient)
        return to_single(a - b * quotient)  # MOD

    def _eval_function(self, expr):
        args = [self.evaluate(arg) for arg in expr.args]
        return self.builtins.call(expr.name, args)

    def _eval_fn(self, expr):
        fn = self.functions.get(expr.name)
        if fn is None:
            raise UndefinedFunctionError()
        if len(expr.args) != len(fn.params):
            raise IllegalQuantityError()
        args = [self.evaluate(arg) for arg in expr.args]
        self._check_stack()
        saved = [(name, self.variables.snapshot(name)) for name in fn.params]
        self.context.fn_depth += 1
        try:
            for name, value in zip(fn.params, args):
                self.variables.set(name, value)
            result = self.evaluate(fn.expr)
        finally:
            self.context.fn_depth -= 1
            for name, value in saved:
                self.variables.restore(name, value)
        return coerce(self.variables.resolve(fn.name), result)


COMPARISONS = {
    '=': lambda a, b: a == b,
    '<>': lambda a, b: a != b,
    '<': lambda a, b: a < b,
    '>': lambda a, b: a > b,
    '<=': lambda a, b: a <= b,
    '>=': lambda a, b: a >= b,
}


def power(base, exponent, fit=to_single):
    if base < 0 and exponent != int(exponent):
        raise IllegalQuantityError()
    if base == 0 and exponent < 0:
        raise DivisionByZeroError()
    try:
        return fit(math.pow(base, exponent))
    except OverflowError:
        raise NumericOverflowError()


def split_reply(reply):
    """Split an INPUT reply on commas that are not inside quotes."""
    items = []
    start = 0
    in_quote = False
    for index, ch in enumerate(reply):
        if ch == '"':
            in_quote = not in_quote
        elif ch == ',' and not in_quote:
            items.append(reply[start:index])
            start = index + 1
    items.append(reply[start:])
    return items
