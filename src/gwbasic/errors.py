## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

ERROR_MESSAGES: dict[int, str] = {
    1: "NEXT without FOR",
    2: "Syntax error",
    3: "RETURN without GOSUB",
    4: "Out of DATA",
    5: "Illegal function call",
    6: "Overflow",
    7: "Out of memory",
    8: "Undefined line number",
    9: "Subscript out of range",
    10: "Duplicate Definition",
    11: "Division by zero",
    12: "Illegal direct",
    13: "Type mismatch",
    14: "Out of string space",
    15: "String too long",
    16: "String formula too complex",
    17: "Can't continue",
    18: "Undefined user function",
    19: "No RESUME",
    20: "RESUME without error",
    22: "Missing operand",
    23: "Line buffer overflow",
    26: "FOR without NEXT",
    29: "WHILE without WEND",
    30: "WEND without WHILE",
    50: "FIELD overflow",
    51: "Internal error",
    52: "Bad file number",
    53: "File not found",
    54: "Bad file mode",
    55: "File already open",
    57: "Device I/O Error",
    58: "File already exists",
    61: "Disk full",
    62: "Input past end",
    63: "Bad record number",
    64: "Bad file name",
    66: "Direct statement in file",
    67: "Too many files",
    70: "Permission Denied",
    75: "Path/File access error",
    76: "Path not found",
}

_ERROR_CLASSES: dict[int, type] = {}


def error_message(code: int) -> str:
    return ERROR_MESSAGES.get(code, "Unprintable error")


class BasicError(Exception):
    code: int = 0

    def __init__(self, message: str = "", *, code: int | None = None, position: int | None = None, line: int | None = None):
        """Base class for all errors raised by a running BASIC program."""
        if code is not None: self.code = code
        super().__init__(message or error_message(self.code))
        self.position: int | None = position
        self.line: int | None = line

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.code and cls.code not in _ERROR_CLASSES:
            _ERROR_CLASSES[cls.code] = cls

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else error_message(self.code)

    @staticmethod
    def from_code(code: int, message: str = "", **kwargs) -> "BasicError":
        if (cls := _ERROR_CLASSES.get(code)) is not None:
            return cls(message, **kwargs)
        return BasicError(message, code=code, **kwargs)


class NextWithoutFor(BasicError):
    code = 1

class BasicSyntaxError(BasicError, ValueError):
    code = 2

class ReturnWithoutGosub(BasicError):
    code = 3

class OutOfData(BasicError, EOFError):
    code = 4

class IllegalFunctionCall(BasicError, ValueError):
    code = 5

class Overflow(BasicError, OverflowError):
    code = 6

class OutOfMemory(BasicError):
    code = 7

class UndefinedLineNumber(BasicError, LookupError):
    code = 8

class SubscriptOutOfRange(BasicError, IndexError):
    code = 9

class DuplicateDefinition(BasicError):
    code = 10

class DivisionByZero(BasicError, ZeroDivisionError):
    code = 11

class IllegalDirect(BasicError):
    code = 12

class TypeMismatch(BasicError, TypeError):
    code = 13

class OutOfStringSpace(BasicError):
    code = 14

class StringTooLong(BasicError):
    code = 15

class CantContinue(BasicError):
    code = 17

class UndefinedUserFunction(BasicError, NameError):
    code = 18

class NoResume(BasicError):
    code = 19

class ResumeWithoutError(BasicError):
    code = 20

class ForWithoutNext(BasicError):
    code = 26

class WhileWithoutWend(BasicError):
    code = 29

class WendWithoutWhile(BasicError):
    code = 30


class BasicFileError(BasicError):
    """Errors raised by the file manager, optionally tied to a file name."""
    def __init__(self, message: str = "", *, code: int | None = None, position: int | None = None, line: int | None = None, filename: str | None = None):
        super().__init__(message, code=code, position=position, line=line)
        self.filename = filename

class FieldOverflow(BasicFileError):
    code = 50

class BadFileNumber(BasicFileError):
    code = 52

class FileNotFound(BasicFileError):
    code = 53

class BadFileMode(BasicFileError):
    code = 54

class FileAlreadyOpen(BasicFileError):
    code = 55

class DeviceIOError(BasicFileError):
    code = 57

class FileAlreadyExists(BasicFileError):
    code = 58

class DiskFull(BasicFileError):
    code = 61

class InputPastEnd(BasicFileError, EOFError):
    code = 62

class BadRecordNumber(BasicFileError):
    code = 63

class BadFileName(BasicFileError):
    code = 64

class PermissionDenied(BasicFileError):
    code = 70

class PathFileAccessError(BasicFileError):
    code = 75

class PathNotFound(BasicFileError):
    code = 76
