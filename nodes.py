class Node:
    # Column (1-based) of the token the node starts at. Parser sets this.
    column = None


# Expressions

class Literal(Node):
    def __init__(self, value):
        self.value = value      # float or str


class Variable(Node):
    def __init__(self, name):
        self.name = name        # includes the sigil: A, A$, A%


class ArrayElement(Node):
    def __init__(self, name, indices):
        self.name = name
        self.indices = indices  # list of expressions


class UnaryOp(Node):
    def __init__(self, op, operand):
        self.op = op            # '-', '+' or 'NOT'
        self.operand = operand


class BinaryOp(Node):
    def __init__(self, op, left, right):
        self.op = op
        self.left = left
        self.right = right


class FunctionCall(Node):
    def __init__(self, name, args):
        self.name = name        # built-in name, e.g. LEFT$
        self.args = args


class FnCall(Node):
    def __init__(self, name, args):
        self.name = name        # user function name without FN, e.g. A or B$
        self.args = args


# Statements

class Let(Node):
    def __init__(self, target, expr):
        self.target = target    # Variable or ArrayElement
        self.expr = expr


class Print(Node):
    def __init__(self, items):
        # expressions interleaved with ';' and ',' separators
        self.items = items


class Input(Node):
    def __init__(self, prompt, targets, question=True):
        self.prompt = prompt
        self.targets = targets
        self.question = question


class If(Node):
    def __init__(self, condition, then_branch, else_branch=None):
        self.condition = condition
        self.then_branch = then_branch
        self.else_branch = else_branch or []


class For(Node):
    def __init__(self, var, start, limit, step=None):
        self.var = var
        self.start = start
        self.limit = limit
        self.step = step


class Next(Node):
    def __init__(self, var=None):
        self.var = var


class Goto(Node):
    def __init__(self, line, line_column=None):
        self.line = line
        self.line_column = line_column  # where the line number was written


class Gosub(Node):
    def __init__(self, line, line_column=None):
        self.line = line
        self.line_column = line_column


class On(Node):
    def __init__(self, selector, targets, gosub=False, columns=None):
        self.selector = selector
        self.targets = targets
        self.gosub = gosub
        self.columns = columns or [None] * len(targets)


class Return(Node):
    pass


class Dim(Node):
    def __init__(self, arrays):
        self.arrays = arrays    # list of (name, [bound expressions])


class Data(Node):
    def __init__(self, items):
        self.items = items      # list of (text, quoted)


class Read(Node):
    def __init__(self, targets):
        self.targets = targets


class Restore(Node):
    def __init__(self, line=None, line_column=None):
        self.line = line
        self.line_column = line_column


class End(Node):
    pass


class Stop(Node):
    pass


class Rem(Node):
    def __init__(self, text):
        self.text = text


class While(Node):
    def __init__(self, condition):
        self.condition = condition


class Wend(Node):
    pass


class Def(Node):
    def __init__(self, name, params, expr):
        self.name = name        # empty for DEF FN(X)
        self.params = params
        self.expr = expr


class DefType(Node):
    def __init__(self, sigil, letters):
        self.sigil = sigil      # '$', '%', '#' or '' for DEFSNG
        self.letters = letters


class MidAssign(Node):
    def __init__(self, target, start, length, expr):
        self.target = target
        self.start = start
        self.length = length    # None when not given
        self.expr = expr


class Swap(Node):
    def __init__(self, first, second):
        self.first = first
        self.second = second


class Erase(Node):
    def __init__(self, names):
        self.names = names


class Clear(Node):
    pass


class Cls(Node):
    pass


class Cont(Node):
    pass


class Tron(Node):
    pass


class Troff(Node):
    pass


class New(Node):
    pass


class Run(Node):
    def __init__(self, line=None, filename=None, line_column=None):
        self.line = line
        self.filename = filename
        self.line_column = line_column


class List(Node):
    def __init__(self, start=None, end=None):
        self.start = start
        self.end = end


class Delete(Node):
    def __init__(self, start=None, end=None):
        self.start = start
        self.end = end


class Renum(Node):
    def __init__(self, new_start=None, old_start=None, step=None):
        self.new_start = new_start
        self.old_start = old_start
        self.step = step


class Load(Node):
    def __init__(self, filename):
        self.filename = filename


class Save(Node):
    def __init__(self, filename):
        self.filename = filename


# Flattened control flow, produced by the program compiler

class IfJump(Node):
    """Falls through when the condition holds, otherwise jumps to `target`
    (an index into the same line's code, or None for the next line)."""
    def __init__(self, condition, target=None):
        self.condition = condition
        self.target = target


class Jump(Node):
    """Unconditional jump within a line; ends a THEN branch that has an ELSE."""
    def __init__(self, target=None):
        self.target = target
