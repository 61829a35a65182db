import logging

logger = logging.getLogger(__name__)


class BasicError(Exception):
    """Base class for every error a BASIC program or command line can raise.

    Each subclass carries the classic error code and message text. The line
    number is filled in by whoever knows it (the engine for runtime errors,
    the loader for file errors); the column is only known for syntax errors.
    """
    code = 0
    message = "PROGRAM ERROR"

    def __init__(self, detail=None, line=None, column=None):
        super().__init__(detail or self.message)
        self.detail = detail
        self.line = line
        self.column = column

    def in_line(self, line, column=None):
        """Attach a line number unless one is already known. Returns self."""
        if self.line is None:
            self.line = line
            if column is not None:
                self.column = column
        return self

    def __str__(self):
        text = "?" + self.message
        if self.line is not None:
            text += " IN %d" % self.line
            if self.column is not None:
                text += ":%d" % self.column
        if self.detail:
            text += "\n" + self.detail
        return text


class NextWithoutForError(BasicError):
    code, message = 1, "NEXT WITHOUT FOR"

class BasicSyntaxError(BasicError):
    code, message = 2, "SYNTAX ERROR"

class ReturnWithoutGosubError(BasicError):
    code, message = 3, "RETURN WITHOUT GOSUB"

class OutOfDataError(BasicError):
    code, message = 4, "OUT OF DATA"

class IllegalQuantityError(BasicError):
    code, message = 5, "ILLEGAL FUNCTION CALL"

class NumericOverflowError(BasicError):
    code, message = 6, "OVERFLOW"

class OutOfMemoryError(BasicError):
    code, message = 7, "OUT OF MEMORY"

class UndefinedLineError(BasicError):
    code, message = 8, "UNDEFINED LINE"

class SubscriptOutOfRangeError(BasicError):
    code, message = 9, "SUBSCRIPT OUT OF RANGE"

class RedimensionedArrayError(BasicError):
    code, message = 10, "REDIMENSIONED ARRAY"

class DivisionByZeroError(BasicError):
    code, message = 11, "DIVISION BY ZERO"

class IllegalDirectError(BasicError):
    code, message = 12, "ILLEGAL DIRECT"

class TypeMismatchError(BasicError):
    code, message = 13, "TYPE MISMATCH"

class StringTooLongError(BasicError):
    code, message = 15, "STRING TOO LONG"

class CantContinueError(BasicError):
    code, message = 17, "CAN'T CONTINUE"

class UndefinedFunctionError(BasicError):
    code, message = 18, "UNDEFINED USER FUNCTION"

class LineBufferOverflowError(BasicError):
    code, message = 23, "LINE BUFFER OVERFLOW"

class ForWithoutNextError(BasicError):
    code, message = 26, "FOR WITHOUT NEXT"

class StackOverflowError(BasicError):
    code, message = 28, "STACK OVERFLOW"

class WhileWithoutWendError(BasicError):
    code, message = 29, "WHILE WITHOUT WEND"

class WendWithoutWhileError(BasicError):
    code, message = 30, "WEND WITHOUT WHILE"


class BreakCondition(BasicError):
    """User interrupt (STOP or an external break). Not an error, but it is
    reported the same way."""
    code, message = 0, "BREAK"


# Storage and network collaborators

class BasicIOError(BasicError):
    code, message = 57, "DISK I/O ERROR"

class BasicFileNotFoundError(BasicIOError):
    code, message = 53, "FILE NOT FOUND"

class FileAlreadyExistsError(BasicIOError):
    code, message = 58, "FILE ALREADY EXISTS"

class BadFileNameError(BasicIOError):
    code, message = 64, "BAD FILE NAME"

class DirectStatementInFileError(BasicIOError):
    code, message = 66, "DIRECT STATEMENT IN FILE"

class NetworkError(BasicIOError):
    code, message = 70, "NETWORK ERROR"


class RedoFromStart(Exception):
    """Raised by INPUT parsing when the reply does not fit the variable list."""
    text = "?REDO FROM START"


class ErrorReporter:
    """Turns a BasicError into the text the user sees.

    `write` is the terminal collaborator's write function; `column` is a
    callable returning the current print column so a half-printed line can
    be finished before the message.
    """

    def __init__(self, write, column=None):
        self.write = write
        self.column = column

    def report(self, error):
        text = str(error)
        if self.column is not None and self.column() > 0:
            text = "\n" + text
        logger.debug("reporting error %d: %s", error.code, text.strip())
        self.write(text + "\n")
        return text
