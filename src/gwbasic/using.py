## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘
#
# PRINT USING templates: `!`, `&` and `\  \` for strings, `# . , + - $$ ** ^^^^` for numbers.
#

import math
from dataclasses import dataclass

from .types import Value
from .errors import IllegalFunctionCall, TypeMismatch


@dataclass
class StringField:
    width: int | None                   # None for `&`, the whole string


@dataclass
class NumberField:
    left: int                           # positions before the decimal point, including sign/$/* positions
    decimals: int
    dot: bool = False
    comma: bool = False
    lead_plus: bool = False
    trail: str = ''                     # '+', '-' or ''
    dollar: bool = False
    fill: str = ' '
    exponent: int = 0                   # number of carets, 0 when not exponential


def parse_template(fmt: str) -> list[str | StringField | NumberField]:
    items: list[str | StringField | NumberField] = []
    literal, i, n = [], 0, len(fmt)

    def flush():
        if literal: items.append(''.join(literal)); literal.clear()

    while i < n:
        ch = fmt[i]
        if ch == '_' and i + 1 < n:
            literal.append(fmt[i + 1]); i += 2
        elif ch == '!':
            flush(); items.append(StringField(1)); i += 1
        elif ch == '&':
            flush(); items.append(StringField(None)); i += 1
        elif ch == '\\' and (close := _closing_backslash(fmt, i)) is not None:
            flush(); items.append(StringField(close - i + 1)); i = close + 1
        elif (parsed := _number_field(fmt, i)) is not None:
            flush(); field, i = parsed; items.append(field)
        else:
            literal.append(ch); i += 1
    flush()
    return items


def _closing_backslash(fmt: str, i: int) -> int | None:
    j = i + 1
    while j < len(fmt) and fmt[j] == ' ': j += 1
    return j if j < len(fmt) and fmt[j] == '\\' else None


def _number_field(fmt: str, i: int) -> tuple[NumberField, int] | None:
    start, n = i, len(fmt)
    field = NumberField(left=0, decimals=0)
    if fmt.startswith('+', i):
        field.lead_plus = True
        i += 1
    if fmt.startswith('**$', i):
        field.fill, field.dollar, field.left, i = '*', True, 3, i + 3
    elif fmt.startswith('**', i):
        field.fill, field.left, i = '*', 2, i + 2
    elif fmt.startswith('$$', i):
        field.dollar, field.left, i = True, 2, i + 2
    digits_seen = field.left > 0
    while i < n and (fmt[i] == '#' or (fmt[i] == ',' and digits_seen)):
        field.comma |= fmt[i] == ','
        field.left += 1
        digits_seen = True
        i += 1
    if i < n and fmt[i] == '.' and (digits_seen or fmt.startswith('#', i + 1)):
        field.dot = True
        i += 1
        while i < n and fmt[i] == '#':
            field.decimals += 1
            i += 1
    if not digits_seen and not field.decimals: return None
    for carets in (5, 4):
        if fmt.startswith('^' * carets, i):
            field.exponent, i = carets, i + carets
            break
    if not field.lead_plus and i < n and fmt[i] in '+-':
        field.trail = fmt[i]
        i += 1
    if field.lead_plus: field.left += 1
    return field, i


def _sign_text(field: NumberField, negative: bool) -> tuple[str, str]:
    if field.trail == '+': return '', '-' if negative else '+'
    if field.trail == '-': return '', '-' if negative else ' '
    if field.lead_plus: return ('-' if negative else '+'), ''
    return ('-' if negative else ''), ''


def _group(digits: str) -> str:
    head = len(digits) % 3 or 3
    return ','.join([digits[:head]] + [digits[k:k + 3] for k in range(head, len(digits), 3)])


def format_number_field(field: NumberField, x: float) -> str:
    negative = x < 0
    lead, trail = _sign_text(field, negative)
    if field.exponent: return _format_exponential(field, abs(x), lead, trail)

    text = f"{abs(x):.{field.decimals}f}"
    whole, _, frac = text.partition('.')
    if negative and float(text) == 0: lead, trail = _sign_text(field, False)
    if whole == '0' and field.left - len(lead) - field.dollar <= 0: whole = ''
    if field.comma: whole = _group(whole)
    left = lead + ('$' if field.dollar else '') + whole
    right = ('.' + frac if field.dot else '') + trail
    if len(left) > field.left: return '%' + left + right
    return left.rjust(field.left, field.fill) + right


def _format_exponential(field: NumberField, ax: float, lead: str, trail: str) -> str:
    reserve = 0 if field.lead_plus or field.trail else 1
    before = max(field.left - reserve - field.dollar - (1 if field.lead_plus else 0), 0)
    digits = before + field.decimals
    if digits == 0: before, digits = 1, 1
    if ax == 0:
        exponent, mantissa = 0, 0.0
    else:
        exponent = math.floor(math.log10(ax)) - before + 1
        mantissa = round(ax / 10 ** exponent, field.decimals)
        if mantissa >= 10 ** before:
            exponent += 1
            mantissa = round(ax / 10 ** exponent, field.decimals)
    body = f"{mantissa:.{field.decimals}f}"
    if before == 0 and body.startswith('0'): body = body[1:]
    if not field.dot: body = body.split('.')[0]
    width = field.exponent - 2
    exp_text = f"E{'-' if exponent < 0 else '+'}{abs(exponent):0{width}d}"
    sign = lead if lead or not reserve else ' '
    return sign + ('$' if field.dollar else '') + body + exp_text + trail


def format_string_field(field: StringField, s: str) -> str:
    if field.width is None: return s
    return s[:field.width].ljust(field.width)


def format_using(fmt: str, values: list[Value]) -> str:
    """Render values through a PRINT USING template, cycling the template when values remain."""
    items = parse_template(fmt)
    if not any(isinstance(it, (StringField, NumberField)) for it in items): raise IllegalFunctionCall()
    out, index = [], 0
    while True:
        for item in items:
            if isinstance(item, str):
                out.append(item)
                continue
            if index >= len(values): return ''.join(out)
            value = values[index]
            index += 1
            if isinstance(item, StringField):
                if not value.is_string: raise TypeMismatch()
                out.append(format_string_field(item, value.value))
            else:
                if value.is_string: raise TypeMismatch()
                out.append(format_number_field(item, float(value.value)))
        if index >= len(values): return ''.join(out)
