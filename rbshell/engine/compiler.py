"""
Query Compiler.

Turns one line of the query language into typed calls:

    get("user:1")
    delete("user:1")
    insert("user:1", {"name": "Ada", "tags": ["admin"], "age": 36})
    update("user:1", {"active": false})

Several calls may follow each other on one line; compile_all returns them
in order. The grammar is a JSON superset without floating point numbers.
"""

import json
from dataclasses import dataclass
from enum import Enum

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken, VisitError
from lark.lexer import PatternStr

from rbshell.core.exceptions import ApplicationError, CompilerContractError, QuerySyntaxError
from rbshell.engine.value import INT64_MAX, INT64_MIN, Document, to_query_text

GRAMMAR = r"""
start: _call+

_call: insert | update | delete | get

insert: "insert" "(" key "," value ")"
update: "update" "(" key "," value ")"
delete: "delete" "(" key ")"
get: "get" "(" key ")"

key: STRING

?value: object
      | array
      | string
      | number
      | true
      | false
      | null

object: "{" (pair ("," pair)*)? "}"
pair: STRING ":" value
array: "[" (value ("," value)*)? "]"
string: STRING
number: SIGNED_INT
true: "true"
false: "false"
null: "null"

STRING: /"(?:[^"\\\x00-\x1f]|\\["\\\/bfnrt]|\\u[0-9a-fA-F]{4})*"/

%import common.SIGNED_INT
%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", propagate_positions=True)


class Verb(str, Enum):
    GET = "get"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def carries_document(self) -> bool:
        return self in (Verb.INSERT, Verb.UPDATE)


@dataclass(frozen=True)
class ParsedCall:
    """One compiled remote operation."""

    verb: Verb
    key: str
    document: Document | None = None

    def __post_init__(self) -> None:
        if self.verb.carries_document != (self.document is not None):
            raise ValueError(f"{self.verb.value} call document mismatch")
        if self.document is not None and not isinstance(self.document, dict):
            raise ValueError(f"{self.verb.value} document must be an object")

    def to_query_text(self) -> str:
        """Render the call back into the query language."""
        key = json.dumps(self.key, ensure_ascii=False)
        if self.document is None:
            return f"{self.verb.value}({key})"
        return f"{self.verb.value}({key}, {to_query_text(self.document)})"


def _decode_string(token: Token) -> str:
    # the STRING terminal only admits JSON escapes
    text = json.loads(str(token))
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise QuerySyntaxError(
            f"string escape {text[e.start]!r} is an unpaired surrogate",
            line=token.line,
            column=token.column,
        ) from e
    return text


class _CallBuilder(Transformer):
    """
    Bottom-up conversion of the parse tree into ParsedCall values.

    Every rule of GRAMMAR that survives into the tree has a method here.
    Anything else reaching __default__ means grammar and compiler disagree.
    """

    def start(self, children):
        return list(children)

    @v_args(meta=True)
    def insert(self, meta, children):
        return self._document_call(Verb.INSERT, meta, children)

    @v_args(meta=True)
    def update(self, meta, children):
        return self._document_call(Verb.UPDATE, meta, children)

    def delete(self, children):
        return ParsedCall(Verb.DELETE, children[0])

    def get(self, children):
        return ParsedCall(Verb.GET, children[0])

    def _document_call(self, verb: Verb, meta, children) -> ParsedCall:
        key, document = children
        if not isinstance(document, dict):
            raise QuerySyntaxError(
                f"{verb.value} expects an object document, got {type(document).__name__}",
                line=meta.line,
                column=meta.column,
            )
        return ParsedCall(verb, key, document)

    def key(self, children):
        return _decode_string(children[0])

    def object(self, children):
        # duplicate keys: last one wins, first position kept
        return dict(children)

    def pair(self, children):
        name, value = children
        return _decode_string(name), value

    def array(self, children):
        return list(children)

    def string(self, children):
        return _decode_string(children[0])

    def number(self, children):
        token = children[0]
        number = int(str(token))
        if not INT64_MIN <= number <= INT64_MAX:
            raise QuerySyntaxError(
                f"integer {token} does not fit in 64 bits",
                line=token.line,
                column=token.column,
            )
        return number

    def true(self, _children):
        return True

    def false(self, _children):
        return False

    def null(self, _children):
        return None

    def __default__(self, data, children, meta):
        raise CompilerContractError(f"No conversion rule for grammar node '{data}'")


def _terminal_label(name: str) -> str:
    if name == "$END":
        return "end of input"
    try:
        terminal = _parser.get_terminal(name)
    except KeyError:
        return name
    if isinstance(terminal.pattern, PatternStr):
        return f'"{terminal.pattern.value}"'
    return name.lower()


def _syntax_error(error: UnexpectedInput, text: str) -> QuerySyntaxError:
    if isinstance(error, UnexpectedCharacters):
        found = f"unexpected character {text[error.pos_in_stream]!r}"
        expected = error.allowed or set()
    elif isinstance(error, UnexpectedToken) and error.token.type != "$END":
        found = f"unexpected {str(error.token)!r}"
        expected = error.expected or set()
    else:
        found = "unexpected end of input"
        expected = getattr(error, "expected", None) or set()

    labels = sorted({_terminal_label(name) for name in expected})
    message = found
    if labels:
        message = f"{found}, expected one of: {', '.join(labels)}"

    line = error.line if isinstance(error.line, int) and error.line > 0 else None
    column = error.column if line is not None else None
    context = None
    if line is not None and error.pos_in_stream is not None and error.pos_in_stream >= 0:
        context = error.get_context(text).rstrip("\n")
    return QuerySyntaxError(message, line=line, column=column, context=context, expected=labels)


def compile_all(text: str) -> list[ParsedCall]:
    """
    Compile every call on a query line.

    Raises:
        QuerySyntaxError: If the text does not match the grammar or a
            document or integer is out of bounds.
        CompilerContractError: If the grammar produced a node the
            compiler has no conversion rule for.
    """
    try:
        tree = _parser.parse(text)
    except UnexpectedInput as e:
        raise _syntax_error(e, text) from e

    try:
        return _CallBuilder().transform(tree)
    except VisitError as e:
        if isinstance(e.orig_exc, ApplicationError):
            raise e.orig_exc from None
        raise


def compile_query(text: str) -> ParsedCall:
    """Compile a line that holds exactly one call."""
    calls = compile_all(text)
    if len(calls) != 1:
        raise QuerySyntaxError(f"expected a single call, found {len(calls)}")
    return calls[0]
