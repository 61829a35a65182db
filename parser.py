import re

import nodes
from errors import BasicError, BasicSyntaxError, OutOfMemoryError
from functions import FUNCTIONS
from lexer import IDENTIFIER_TYPES, Lexer, render

MAX_LINE_NUMBER = 65529

LINE_NUMBER_RE = re.compile(r'[ \t]*(\d+)(?![\d.])[ \t]?')

# Binary operator levels, loosest first. Unary operators and ^ sit above these.
BINARY_LEVELS = [
    {'OR', 'XOR'},
    {'AND'},
    {'=', '<>', '<', '>', '<=', '>='},
    {'+', '-'},
    {'*', '/', '\\', 'MOD'},
]

STATEMENT_END = ('COLON', 'ELSE')


class Parser:
    """Recursive descent over one line's tokens.

    Expressions are parsed by precedence climbing over BINARY_LEVELS; `^` is
    right-associative and binds tighter than unary minus, so -2^2 is -4.
    """

    def __init__(self):
        self.lexer = Lexer()
        self.tokens = []
        self.pos = 0
        self.end_column = None

    def parse_source(self, text):
        """Split off and validate the line number, then parse the rest.

        Returns (line_number or None, statements, source). For a numbered line
        source is its canonical listing text, and the statements are parsed
        from that so error columns match what LIST shows.
        """
        text = text.rstrip('\r\n')
        line_number = None
        offset = 0
        mo = LINE_NUMBER_RE.match(text)
        if mo:
            line_number = int(mo.group(1))
            if line_number < 1 or line_number > MAX_LINE_NUMBER:
                raise BasicSyntaxError(column=mo.start(1) + 1)
            offset = mo.end()
        try:
            tokens = self._tokenize(text, offset)
            if line_number is None:
                return None, self.parse_line(tokens, len(text) + 1), text.strip()
            source = render(tokens, offset + 1).lstrip()
            listed = "%d %s" % (line_number, source)
            if listed != text:
                text = listed
                tokens = self._tokenize(text, len(str(line_number)) + 1)
            statements = self.parse_line(tokens, end_column=len(text) + 1)
        except BasicError as e:
            if line_number is not None:
                e.in_line(line_number)
            raise
        return line_number, statements, source

    def _tokenize(self, text, offset):
        tokens = self.lexer.tokenize(text[offset:])
        for token in tokens:
            token.column += offset
            token.end += offset
        return tokens

    def parse_line(self, tokens, end_column=None):
        self.tokens = tokens
        self.pos = 0
        if end_column is None and tokens:
            last = tokens[-1]
            end_column = last.end
        self.end_column = end_column
        try:
            statements = self._statement_list()
        except RecursionError:
            # nesting too deep for the expression stack
            raise OutOfMemoryError(column=self._column()) from None
        if self.peek() is not None:
            self._error()
        return statements

    # Token cursor

    def peek(self, offset=0):
        index = self.pos + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def peek_type(self):
        token = self.peek()
        return token.type if token else None

    def advance(self):
        token = self.peek()
        if token is None:
            self._error()
        self.pos += 1
        return token

    def accept(self, *types):
        if self.peek_type() in types:
            return self.advance()
        return None

    def expect(self, *types):
        token = self.peek()
        if token is None or token.type not in types:
            self._error(token)
        self.pos += 1
        return token

    def _column(self, token=None):
        if token is None:
            token = self.peek()
        return token.column if token is not None else self.end_column

    def _error(self, token=None):
        raise BasicSyntaxError(column=self._column(token))

    def _at_statement_end(self):
        return self.peek() is None or self.peek_type() in STATEMENT_END

    # Statements

    def _statement_list(self):
        statements = []
        while True:
            if self.accept('COLON'):
                continue
            if self.peek() is None or self.peek_type() == 'ELSE':
                return statements
            statements.extend(self._statement())
            if not self._at_statement_end():
                self._error()

    def _statement(self):
        token = self.peek()
        start = self.pos
        handler = getattr(self, '_stmt_' + token.type.lower(), None)
        if token.type in IDENTIFIER_TYPES:
            result = [self._let()]
        elif token.type == 'MID$':
            self.advance()
            result = [self._mid_assign()]
        elif handler is None:
            self._error(token)
        else:
            self.advance()
            result = handler()
            if not isinstance(result, list):
                result = [result]
        for statement in result:
            if statement.column is None:
                statement.column = self.tokens[start].column
        return result

    def _let(self):
        target = self._lvalue()
        self.expect('ASSIGN')
        return nodes.Let(target, self._expression())

    def _stmt_let(self):
        if self.accept('MID$'):
            return self._mid_assign()
        return self._let()

    def _mid_assign(self):
        # MID$(A$, start[, length]) = replacement
        self.expect('LPAREN')
        target = self._lvalue()
        self.expect('COMMA')
        start = self._expression()
        length = None
        if self.accept('COMMA'):
            length = self._expression()
        self.expect('RPAREN')
        self.expect('ASSIGN')
        return nodes.MidAssign(target, start, length, self._expression())

    def _stmt_print(self):
        items = []
        while not self._at_statement_end():
            if self.peek_type() in ('SEMICOLON', 'COMMA'):
                items.append(';' if self.advance().type == 'SEMICOLON' else ',')
            else:
                items.append(self._expression())
        return nodes.Print(items)

    def _stmt_input(self):
        prompt = ""
        question = True
        self.accept('COMMA')
        if self.peek_type() == 'STRING':
            prompt = self.advance().value
            separator = self.expect('SEMICOLON', 'COMMA')
            question = separator.type == 'SEMICOLON'
        targets = [self._lvalue()]
        while self.accept('COMMA'):
            targets.append(self._lvalue())
        return nodes.Input(prompt, targets, question)

    def _stmt_if(self):
        condition = self._expression()
        if self.accept('GOTO'):
            then_branch = [self._goto_at(self.tokens[self.pos - 1])]
            then_branch.extend(self._statement_list())
        else:
            self.expect('THEN')
            then_branch = self._branch()
        else_branch = []
        if self.accept('ELSE'):
            else_branch = self._branch()
        return nodes.If(condition, then_branch, else_branch)

    def _branch(self):
        # THEN 100 / ELSE 100 are GOTO shorthand
        if self.peek_type() == 'NUMBER':
            return [self._goto_at(self.peek())] + self._statement_list()
        return self._statement_list()

    def _goto_at(self, token):
        goto = nodes.Goto(*self._line_reference())
        goto.column = token.column
        return goto

    def _stmt_for(self):
        var = self.expect('ID_NUM', 'ID_INT').value
        self.expect('ASSIGN')
        start = self._expression()
        self.expect('TO')
        limit = self._expression()
        step = None
        if self.accept('STEP'):
            step = self._expression()
        return nodes.For(var, start, limit, step)

    def _stmt_next(self):
        if self._at_statement_end():
            return [nodes.Next()]
        result = [nodes.Next(self.expect('ID_NUM', 'ID_INT').value)]
        while self.accept('COMMA'):
            result.append(nodes.Next(self.expect('ID_NUM', 'ID_INT').value))
        return result

    def _stmt_goto(self):
        return nodes.Goto(*self._line_reference())

    def _stmt_gosub(self):
        return nodes.Gosub(*self._line_reference())

    def _stmt_on(self):
        selector = self._expression()
        gosub = self.expect('GOTO', 'GOSUB').type == 'GOSUB'
        references = [self._line_reference()]
        while self.accept('COMMA'):
            references.append(self._line_reference())
        targets = [number for number, _ in references]
        columns = [column for _, column in references]
        return nodes.On(selector, targets, gosub, columns)

    def _stmt_return(self):
        return nodes.Return()

    def _stmt_dim(self):
        arrays = []
        while True:
            name = self.expect('ID_NUM', 'ID_STR', 'ID_INT').value
            self.expect('LPAREN')
            bounds = self._arguments()
            arrays.append((name, bounds))
            if not self.accept('COMMA'):
                return nodes.Dim(arrays)

    def _stmt_data(self):
        raw = self.expect('DATA_TEXT').value
        return nodes.Data(split_data(raw))

    def _stmt_read(self):
        targets = [self._lvalue()]
        while self.accept('COMMA'):
            targets.append(self._lvalue())
        return nodes.Read(targets)

    def _stmt_restore(self):
        if self._at_statement_end():
            return nodes.Restore()
        return nodes.Restore(*self._line_reference())

    def _stmt_end(self):
        return nodes.End()

    def _stmt_stop(self):
        return nodes.Stop()

    def _stmt_rem(self):
        remark = self.accept('REMARK')
        return nodes.Rem(remark.value if remark else "")

    def _stmt_while(self):
        return nodes.While(self._expression())

    def _stmt_wend(self):
        return nodes.Wend()

    def _stmt_def(self):
        self.expect('FN')
        name = self._fn_name()
        params = []
        if self.accept('LPAREN'):
            if not self.accept('RPAREN'):
                params.append(self.expect('ID_NUM', 'ID_STR', 'ID_INT').value)
                while self.accept('COMMA'):
                    params.append(self.expect('ID_NUM', 'ID_STR', 'ID_INT').value)
                self.expect('RPAREN')
        self.expect('ASSIGN')
        return nodes.Def(name, params, self._expression())

    def _fn_name(self):
        # DEF FN(X) defines the function with no name
        if self.peek_type() == 'LPAREN':
            return ''
        return self.expect(*IDENTIFIER_TYPES).value

    def _stmt_defint(self):
        return self._deftype('%')

    def _stmt_defsng(self):
        return self._deftype('')

    def _stmt_defdbl(self):
        return self._deftype('#')

    def _stmt_defstr(self):
        return self._deftype('$')

    def _deftype(self, sigil):
        """Letter list such as A-C,X: returns a DefType naming every letter."""
        letters = []
        while True:
            first = self._letter()
            last = first
            if self.peek_type() == 'OP' and self.peek().value == '-':
                self.advance()
                last = self._letter()
                if last < first:
                    self._error(self.tokens[self.pos - 1])
            letters.extend(chr(c) for c in range(ord(first), ord(last) + 1))
            if not self.accept('COMMA'):
                return nodes.DefType(sigil, letters)

    def _letter(self):
        token = self.expect('ID_NUM')
        if len(token.value) != 1:
            self._error(token)
        return token.value

    def _stmt_swap(self):
        first = self._lvalue()
        self.expect('COMMA')
        return nodes.Swap(first, self._lvalue())

    def _stmt_erase(self):
        names = []
        while not self._at_statement_end():
            names.append(self.expect('ID_NUM', 'ID_STR', 'ID_INT').value)
            if not self.accept('COMMA'):
                break
        return nodes.Erase(names)

    def _stmt_clear(self):
        # CLEAR ,n,m takes memory sizes on other machines; they are ignored here
        while not self._at_statement_end():
            self.advance()
        return nodes.Clear()

    def _stmt_cls(self):
        return nodes.Cls()

    def _stmt_cont(self):
        return nodes.Cont()

    def _stmt_tron(self):
        return nodes.Tron()

    def _stmt_troff(self):
        return nodes.Troff()

    def _stmt_new(self):
        return nodes.New()

    def _stmt_run(self):
        if self.peek_type() == 'NUMBER':
            line, column = self._line_reference()
            return nodes.Run(line=line, line_column=column)
        if not self._at_statement_end():
            return nodes.Run(filename=self._expression())
        return nodes.Run()

    def _stmt_list(self):
        start, end = self._line_range()
        return nodes.List(start, end)

    def _stmt_delete(self):
        start, end = self._line_range()
        return nodes.Delete(start, end)

    def _stmt_renum(self):
        # RENUM [new][,[old][,step]]
        numbers = [None, None, None]
        for index in range(3):
            if self.peek_type() == 'NUMBER':
                numbers[index] = self._line_number()
            if index == 2 or not self.accept('COMMA'):
                break
        return nodes.Renum(*numbers)

    def _stmt_load(self):
        return nodes.Load(self._expression())

    def _stmt_save(self):
        return nodes.Save(self._expression())

    # Pieces

    def _line_reference(self):
        """A line number written in a statement: (number, column)."""
        column = self._column()
        return self._line_number(), column

    def _line_number(self):
        token = self.expect('NUMBER')
        value = token.value
        if value != int(value) or value < 0 or value > MAX_LINE_NUMBER:
            self._error(token)
        return int(value)

    def _line_range(self):
        """[n][-[m]]: returns (start, end); a lone n means n-n."""
        start = end = None
        if self.peek_type() == 'NUMBER':
            start = self._line_number()
            if not (self.peek_type() == 'OP' and self.peek().value == '-'):
                return start, start
        if self.peek_type() == 'OP' and self.peek().value == '-':
            self.advance()
            if self.peek_type() == 'NUMBER':
                end = self._line_number()
        return start, end

    def _lvalue(self):
        token = self.expect('ID_NUM', 'ID_STR', 'ID_INT')
        if self.accept('LPAREN'):
            target = nodes.ArrayElement(token.value, self._arguments())
        else:
            target = nodes.Variable(token.value)
        target.column = token.column
        return target

    def _arguments(self):
        # after '(' up to and including ')'
        args = [self._expression()]
        while self.accept('COMMA'):
            args.append(self._expression())
        self.expect('RPAREN')
        return args

    # Expressions

    def _expression(self, level=0):
        if level == len(BINARY_LEVELS):
            return self._unary()
        left = self._expression(level + 1)
        while True:
            op = self._binary_operator(BINARY_LEVELS[level])
            if op is None:
                return left
            token = self.advance()
            right = self._expression(level + 1)
            left = nodes.BinaryOp(op, left, right)
            left.column = token.column

    def _binary_operator(self, ops):
        token = self.peek()
        if token is None:
            return None
        if token.type == 'ASSIGN':
            op = '='
        elif token.type in ('OP', 'RELOP'):
            op = token.value
        else:
            op = token.type
        return op if op in ops else None

    def _unary(self):
        token = self.peek()
        if token is not None and (token.type == 'NOT' or
                                  token.type == 'OP' and token.value in ('-', '+')):
            self.advance()
            node = nodes.UnaryOp('NOT' if token.type == 'NOT' else token.value, self._unary())
            node.column = token.column
            return node
        return self._power()

    def _power(self):
        base = self._primary()
        token = self.peek()
        if token is not None and token.type == 'OP' and token.value == '^':
            self.advance()
            node = nodes.BinaryOp('^', base, self._unary())
            node.column = token.column
            return node
        return base

    def _primary(self):
        token = self.peek()
        if token is None:
            self._error()
        if token.type in ('NUMBER', 'STRING'):
            self.advance()
            node = nodes.Literal(token.value)
        elif token.type == 'LPAREN':
            self.advance()
            node = self._expression()
            self.expect('RPAREN')
            return node
        elif token.type in ('ID_NUM', 'ID_STR', 'ID_INT'):
            return self._lvalue()
        elif token.type in FUNCTIONS:
            self.advance()
            args = []
            if self.accept('LPAREN'):
                # RND() and friends take empty parentheses
                if not self.accept('RPAREN'):
                    args = self._arguments()
            fewest, most = FUNCTIONS[token.type]
            if not fewest <= len(args) <= most:
                self._error(token)
            node = nodes.FunctionCall(token.type, args)
        elif token.type == 'FN':
            self.advance()
            name = self._fn_name()
            args = self._arguments() if self.accept('LPAREN') else []
            node = nodes.FnCall(name, args)
        else:
            self._error(token)
        node.column = token.column
        return node


def split_data(raw):
    """Split DATA text on unquoted commas into (text, quoted) items."""
    items = []
    current = ''
    in_quote = False
    for ch in raw:
        if ch == '"':
            in_quote = not in_quote
            current += ch
        elif ch == ',' and not in_quote:
            items.append(_data_item(current))
            current = ''
        else:
            current += ch
    items.append(_data_item(current))
    return items


def _data_item(text):
    text = text.strip()
    if text.startswith('"'):
        end = text.find('"', 1)
        return (text[1:end] if end != -1 else text[1:]), True
    return text, False
