"""
Expression language used inside {{ }} placeholders.

A deliberately small interpreter: literals, names, property and index access,
calls, array/object literals, arrow functions and the usual infix operators.
Expressions are evaluated against a plain mapping and never see Python
builtins, modules or underscore attributes.

`|` is not an operator here: placeholders are split on every pipe before an
expression reaches this module, so logical or is spelled `or`.
"""

import json
import re
from collections import ChainMap
from collections.abc import Mapping, Sequence, Sized
from functools import lru_cache
from typing import Any, List, Tuple

from .errors import ExpressionError

TOKEN_REGEX = re.compile(r"""
    (?P<ws>\s+)
  | (?P<num>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z_$][\w$]*)
  | (?P<str>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|`(?:[^`\\]|\\.)*`)
  | (?P<op>===|!==|\?\.(?!\d)|\?\?|=>|==|!=|<=|>=|&&|[-+*/%<>!?:.,()\[\]{}])
""", re.VERBOSE | re.DOTALL)

KEYWORDS = {'true': True, 'false': False, 'null': None, 'undefined': None}
WORD_OPERATORS = {'and', 'or', 'not'}

ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0'}

BINARY_PRECEDENCE = [
    ('??',),
    ('or',),
    ('&&', 'and'),
    ('==', '!=', '===', '!=='),
    ('<', '<=', '>', '>='),
    ('+', '-'),
    ('*', '/', '%'),
]
SHORT_CIRCUIT = {'??', 'or', '&&', 'and'}

# str.format can reach dunder attributes through its field syntax
BLOCKED_ATTRIBUTES = {'format', 'format_map'}


def to_text(value: Any) -> str:
    """Convert an evaluated value to the text inserted into a document."""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ','.join(to_text(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(dict(value), default=str, ensure_ascii=False)
    return str(value)


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    result = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == '\\' and i + 1 < len(body):
            nxt = body[i + 1]
            if nxt == 'u' and re.match(r'[0-9a-fA-F]{4}', body[i + 2:i + 6]):
                result.append(chr(int(body[i + 2:i + 6], 16)))
                i += 6
                continue
            result.append(ESCAPES.get(nxt, nxt))
            i += 2
            continue
        result.append(char)
        i += 1
    return ''.join(result)


def tokenize(source: str) -> List[Tuple[str, Any]]:
    """Split an expression into (kind, value) tokens."""
    tokens = []
    pos = 0
    while pos < len(source):
        match = TOKEN_REGEX.match(source, pos)
        if not match:
            raise ExpressionError(f"unexpected character {source[pos]!r} in expression")
        kind = match.lastgroup
        text = match.group(kind)
        pos = match.end()
        if kind == 'ws':
            continue
        if kind == 'num':
            value = float(text) if any(c in text for c in '.eE') else int(text)
            tokens.append(('lit', value))
        elif kind == 'str':
            tokens.append(('lit', _unquote(text)))
        elif kind == 'name' and text in KEYWORDS:
            tokens.append(('lit', KEYWORDS[text]))
        elif kind == 'name' and text in WORD_OPERATORS:
            tokens.append(('op', text))
        else:
            tokens.append((kind, text))
    tokens.append(('eof', None))
    return tokens


class Parser:
    """Recursive descent parser producing nested tuples."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    def peek(self, offset=0):
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def at(self, *ops) -> bool:
        kind, value = self.peek()
        return kind == 'op' and value in ops

    def advance(self):
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def expect(self, op):
        if not self.at(op):
            found = self.peek()[1]
            raise ExpressionError(f"expected '{op}' but found {found!r} in: {self.source}")
        return self.advance()

    def parse(self):
        node = self.expression()
        if self.peek()[0] != 'eof':
            raise ExpressionError(f"unexpected {self.peek()[1]!r} in: {self.source}")
        return node

    def expression(self):
        params = self._arrow_params()
        if params is not None:
            return ('lambda', params, self.expression())
        return self.conditional()

    def _arrow_params(self):
        """Consume an arrow function head if one starts here."""
        kind, value = self.peek()
        if kind == 'name' and self.peek(1) == ('op', '=>'):
            self.pos += 2
            return (value,)
        if not self.at('('):
            return None
        params = []
        offset = 1
        while True:
            kind, value = self.peek(offset)
            if kind == 'op' and value == ')' and not params:
                break
            if kind != 'name':
                return None
            params.append(value)
            kind, value = self.peek(offset + 1)
            offset += 2
            if (kind, value) == ('op', ')'):
                offset -= 1
                break
            if (kind, value) != ('op', ','):
                return None
        if self.peek(offset + 1) != ('op', '=>'):
            return None
        self.pos += offset + 2
        return tuple(params)

    def conditional(self):
        test = self.binary(0)
        if self.at('?'):
            self.advance()
            consequent = self.expression()
            self.expect(':')
            alternative = self.expression()
            return ('cond', test, consequent, alternative)
        return test

    def binary(self, level):
        if level == len(BINARY_PRECEDENCE):
            return self.unary()
        left = self.binary(level + 1)
        while self.at(*BINARY_PRECEDENCE[level]):
            op = self.advance()[1]
            right = self.binary(level + 1)
            kind = 'logic' if op in SHORT_CIRCUIT else 'binary'
            left = (kind, op, left, right)
        return left

    def unary(self):
        if self.at('!', 'not', '-', '+'):
            op = self.advance()[1]
            return ('unary', op, self.unary())
        return self.postfix(self.primary())

    def postfix(self, node):
        while True:
            if self.at('.', '?.'):
                optional = self.advance()[1] == '?.'
                if self.at('['):
                    self.advance()
                    key = self.expression()
                    self.expect(']')
                    node = ('index', node, key, optional)
                    continue
                kind, name = self.advance()
                if kind not in ('name', 'op') or not re.match(r'^[A-Za-z_$][\w$]*$', str(name)):
                    raise ExpressionError(f"expected a property name in: {self.source}")
                node = ('attr', node, name, optional)
            elif self.at('['):
                self.advance()
                key = self.expression()
                self.expect(']')
                node = ('index', node, key, False)
            elif self.at('('):
                self.advance()
                node = ('call', node, self.sequence(')'))
            else:
                return node

    def sequence(self, closing):
        items = []
        while not self.at(closing):
            items.append(self.expression())
            if not self.at(closing):
                self.expect(',')
        self.advance()
        return items

    def primary(self):
        kind, value = self.peek()
        if kind == 'lit':
            self.advance()
            return ('lit', value)
        if kind == 'name':
            self.advance()
            return ('name', value)
        if self.at('('):
            self.advance()
            node = self.expression()
            self.expect(')')
            return node
        if self.at('['):
            self.advance()
            return ('array', self.sequence(']'))
        if self.at('{'):
            self.advance()
            return self.object_literal()
        if kind == 'eof':
            raise ExpressionError(f"unexpected end of expression: {self.source}")
        raise ExpressionError(f"unexpected {value!r} in: {self.source}")

    def object_literal(self):
        entries = []
        while not self.at('}'):
            kind, key = self.advance()
            if kind not in ('name', 'lit') and not (kind == 'op' and key in WORD_OPERATORS):
                raise ExpressionError(f"invalid object key {key!r} in: {self.source}")
            if kind == 'lit':
                key = to_text(key)
            if self.at(':'):
                self.advance()
                entries.append((key, self.expression()))
            elif kind == 'name':
                entries.append((key, ('name', key)))
            else:
                self.expect(':')
            if not self.at('}'):
                self.expect(',')
        self.advance()
        return ('object', entries)


@lru_cache(maxsize=512)
def compile_expression(source: str):
    """Parse an expression once; the resulting tree is reused across renders."""
    return Parser(source).parse()


def get_member(obj: Any, name: Any) -> Any:
    """Read a property the way an expression author expects it."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    if isinstance(name, str) and (name.startswith('_') or name in BLOCKED_ATTRIBUTES):
        raise ExpressionError(f"access to '{name}' is not allowed")
    if isinstance(name, (int, float)) and not isinstance(name, bool):
        if isinstance(obj, Sequence) and float(name).is_integer():
            index = int(name)
            if 0 <= index < len(obj):
                return obj[index]
        return None
    if name == 'length' and isinstance(obj, Sized):
        return len(obj)
    return getattr(obj, str(name), None)


class Evaluator:
    """Walks a compiled expression tree against a scope mapping."""

    def __init__(self, scope: Mapping):
        self.scope = scope

    def evaluate(self, node):
        return getattr(self, f"eval_{node[0]}")(node)

    def eval_lit(self, node):
        return node[1]

    def eval_name(self, node):
        name = node[1]
        if name not in self.scope:
            raise ExpressionError(f"{name} is not defined")
        return self.scope[name]

    def eval_attr(self, node):
        _, target, name, optional = node
        obj = self.evaluate(target)
        if obj is None:
            if optional:
                return None
            raise ExpressionError(f"cannot read property '{name}' of undefined")
        return get_member(obj, name)

    def eval_index(self, node):
        _, target, key, optional = node
        obj = self.evaluate(target)
        if obj is None:
            if optional:
                return None
            raise ExpressionError("cannot read index of undefined")
        return get_member(obj, self.evaluate(key))

    def eval_call(self, node):
        _, target, arg_nodes = node
        func = self.evaluate(target)
        if not callable(func):
            raise ExpressionError(f"{describe(target)} is not a function")
        return func(*[self.evaluate(arg) for arg in arg_nodes])

    def eval_array(self, node):
        return [self.evaluate(item) for item in node[1]]

    def eval_object(self, node):
        return {key: self.evaluate(value) for key, value in node[1]}

    def eval_unary(self, node):
        _, op, operand = node
        value = self.evaluate(operand)
        if op in ('!', 'not'):
            return not value
        number = to_number(value)
        return -number if op == '-' else number

    def eval_logic(self, node):
        _, op, left, right = node
        value = self.evaluate(left)
        if op == '??':
            return value if value is not None else self.evaluate(right)
        if op == 'or':
            return value if value else self.evaluate(right)
        return self.evaluate(right) if value else value

    def eval_binary(self, node):
        _, op, left, right = node
        a = self.evaluate(left)
        b = self.evaluate(right)
        if op == '+':
            if isinstance(a, str) or isinstance(b, str):
                return to_text(a) + to_text(b)
            return a + b
        if op in ('==', '==='):
            return a == b
        if op in ('!=', '!=='):
            return a != b
        if op == '-':
            return a - b
        if op == '*':
            return a * b
        if op == '/':
            return a / b
        if op == '%':
            return a % b
        if op == '<':
            return a < b
        if op == '<=':
            return a <= b
        if op == '>':
            return a > b
        return a >= b

    def eval_cond(self, node):
        _, test, consequent, alternative = node
        return self.evaluate(consequent if self.evaluate(test) else alternative)

    def eval_lambda(self, node):
        _, params, body = node
        scope = self.scope

        def arrow(*args):
            local = dict(zip(params, args))
            for param in params[len(args):]:
                local[param] = None
            return Evaluator(ChainMap(local, scope)).evaluate(body)

        return arrow


def describe(node) -> str:
    if node[0] == 'name':
        return node[1]
    if node[0] == 'attr':
        return f"{describe(node[1])}.{node[2]}"
    return 'expression'


def to_number(value: Any):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    try:
        text = str(value).strip()
        return int(text) if re.match(r'^-?\d+$', text) else float(text)
    except ValueError:
        raise ExpressionError(f"cannot convert {value!r} to a number") from None


def evaluate(source: str, scope: Mapping) -> Any:
    """Evaluate an expression string against a scope."""
    return Evaluator(scope).evaluate(compile_expression(source.strip()))
