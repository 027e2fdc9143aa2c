## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from dataclasses import dataclass
from typing import Callable

from .types import ScalarType, Value
from .numeric import convert
from .variables import VariableTable
from .errors import DuplicateDefinition, UndefinedUserFunction, BasicSyntaxError, OutOfMemory


MAX_CALL_DEPTH = 200


@dataclass(frozen=True)
class UserFunction:
    name: str
    type: ScalarType
    params: tuple[str, ...]
    body: bytes
    start: int


class UserFunctionManager:
    """`DEF FN` definitions; parameters shadow same-named variables only while the body is evaluated."""

    def __init__(self, variables: VariableTable):
        self.variables = variables
        self.functions: dict[str, UserFunction] = {}
        self.depth = 0

    def define(self, name: str, params: list[str], body: bytes, start: int) -> UserFunction:
        key, t = self.variables.resolve("FN" + name)
        params = tuple(self.variables.resolve(p)[0] for p in params)
        if len(set(params)) != len(params): raise BasicSyntaxError()
        fn = UserFunction(key, t, params, bytes(body), start)
        if (existing := self.functions.get(key)) is not None:
            if existing == fn: return existing
            raise DuplicateDefinition()
        self.functions[key] = fn
        return fn

    def call(self, name: str, args: list[Value], evaluate: Callable[[bytes, int], tuple[Value, int]]) -> Value:
        key, _ = self.variables.resolve(name if name.startswith("FN") else "FN" + name)
        if (fn := self.functions.get(key)) is None: raise UndefinedUserFunction()
        if len(args) != len(fn.params): raise BasicSyntaxError()
        if self.depth >= MAX_CALL_DEPTH: raise OutOfMemory()

        slots = self.variables.slots
        saved = {p: slots.pop(p, None) for p in fn.params}
        self.depth += 1
        try:
            for param, arg in zip(fn.params, args):
                self.variables.set(param, arg)
            result, _ = evaluate(fn.body, fn.start)
        except RecursionError:
            raise OutOfMemory() from None
        finally:
            self.depth -= 1
            for param, slot in saved.items():
                self.variables.remove(param)
                if slot is not None: slots[param] = slot
        return convert(result, fn.type)

    def clear(self) -> None:
        self.functions.clear()
        self.depth = 0
