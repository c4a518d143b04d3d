import enum
import logging
import re
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    ClassVar,
    Iterable,
    Iterator,
    List,
    Literal,
    NamedTuple,
    Optional,
    Tuple,
    Union,
)

# Lossless parser for the value side of a CSS declaration.
# Ref: https://www.w3.org/TR/css-values-4/#component-types


logger = logging.getLogger(__name__)

QUOTES = frozenset("\"'")

DIVIDERS = frozenset(",/:")

BACKSLASH = "\\"


# region nodes


class NodeType(str, enum.Enum):
    WORD = "word"
    STRING = "string"
    DIV = "div"
    SPACE = "space"
    COMMENT = "comment"
    FUNCTION = "function"


@dataclass
class Node:
    source_index: int
    value: str
    source_end_index: int = 0

    type: ClassVar[NodeType]

    def __str__(self) -> str:
        return stringify(self)


@dataclass
class Word(Node):
    # Keywords, quantities (20px, 75%, 1.5), hex colors
    type = NodeType.WORD


@dataclass
class Space(Node):
    type = NodeType.SPACE


@dataclass
class String(Node):
    type = NodeType.STRING

    quote: str = '"'
    unclosed: bool = False


@dataclass
class Div(Node):
    """A divider: `,` in `1s, 2s`, `/` in `10px / 23px`, `:` in `(min-width: 700px)`"""

    type = NodeType.DIV

    before: str = ""
    after: str = ""


@dataclass
class Comment(Node):
    type = NodeType.COMMENT

    unclosed: bool = False


@dataclass
class Function(Node):
    """A function such as `rgb(0,0,0)` or `url(foo.bar)`.

    `value` is the name, empty for a bare parenthesised group. `before` and
    `after` hold the whitespace just inside the parentheses.
    """

    type = NodeType.FUNCTION

    before: str = ""
    after: str = ""
    nodes: List[Node] = field(default_factory=list)
    unclosed: bool = False


# endregion

# region unit


class Quantity(NamedTuple):
    number: str
    unit: str


NUMBER_PREFIX = re.compile(
    r"""
    [+-]?
    (?:
        [0-9]+ (?: \.[0-9]+ )?
        | \.[0-9]+
    )
    (?: [eE] [+-]? [0-9]+ )?
    """,
    re.VERBOSE,
)


def unit(quantity: str) -> Union[Quantity, Literal[False]]:
    """Splits a single quantity into its number and unit

    Only pass isolated words, e.g. the value of a `Word` node: `unit("1px solid")`
    gives a unit of `px solid`.

    Returns False when the quantity does not start with a number.
    """
    match = NUMBER_PREFIX.match(quantity)
    if match is None:
        return False

    end = match.end()
    return Quantity(quantity[:end], quantity[end:])


# endregion

# region scanner


class Scanner:
    """Single pass over a value, building the node tree

    Nested functions are tracked with an explicit stack of open `Function`
    nodes instead of recursion. Malformed input never raises: unterminated
    constructs are flagged `unclosed` and reported in `errors`.
    """

    def __init__(self, content: str) -> None:
        self.content = content
        self.pos = 0
        self.nodes: List[Node] = []
        self.stack: List[Function] = []
        self.errors: List[str] = []

        # Whitespace waiting for the next divider or closing parenthesis
        self.before = ""
        self.after = ""
        # Word directly followed by `(`
        self.name = ""

    @property
    def eof(self) -> bool:
        return self.pos >= len(self.content)

    @property
    def current(self) -> List[Node]:
        # The list new nodes are appended to
        if self.stack:
            return self.stack[-1].nodes
        return self.nodes

    def peek(self, n: int = 1) -> str:
        # Returns the next N characters without modifying the position
        return self.content[self.pos : self.pos + n]

    def advance(self, n: int) -> int:
        self.pos = min(self.pos + n, len(self.content))
        return self.pos

    def error(self, message: str) -> None:
        logger.debug("%s (at %d)", message, self.pos)
        self.errors.append(message)

    @classmethod
    def is_whitespace(cls, c: str) -> bool:
        # Every control character counts as whitespace
        return c != "" and c <= " "

    def is_escaped(self, index: int) -> bool:
        # An odd number of backslashes in front escapes the character
        count = 0
        while index - count - 1 >= 0 and self.content[index - count - 1] == BACKSLASH:
            count += 1
        return count % 2 == 1

    def find_unescaped(self, char: str, start: int) -> int:
        found = self.content.find(char, start)
        while found != -1 and self.is_escaped(found):
            found = self.content.find(char, found + 1)
        return found

    def at_comment_start(self) -> bool:
        return self.peek(2) == "/*"

    def at_word_end(self) -> bool:
        c = self.peek(1)
        return (
            self.is_whitespace(c)
            or c in QUOTES
            or c in DIVIDERS
            or c == "("
            or (c == ")" and bool(self.stack))
        )

    def scan(self) -> List[Node]:
        while not self.eof:
            self.next_node()

        while self.stack:
            function = self.stack.pop()
            function.unclosed = True
            function.source_end_index = len(self.content)
            self.error(f"Function `{function.value}` did not close.")

        return self.nodes

    def next_node(self) -> None:
        c = self.peek(1)
        if self.is_whitespace(c):
            self.consume_whitespace()
        elif c in QUOTES:
            self.consume_string()
        elif self.at_comment_start():
            self.consume_comment()
        elif c in DIVIDERS:
            self.consume_divider()
        elif c == "(":
            self.consume_function()
        elif c == ")" and self.stack:
            self.close_function()
        else:
            # Including a `)` without an open function
            self.consume_word()

    def consume_whitespace(self) -> None:
        start = self.pos
        while not self.eof and self.is_whitespace(self.peek(1)):
            self.advance(1)

        value = self.content[start : self.pos]
        following = self.peek(1)
        siblings = self.current
        prev = siblings[-1] if siblings else None

        if following == ")" and self.stack:
            self.after = value
        elif isinstance(prev, Div):
            prev.after = value
            prev.source_end_index += len(value)
        elif following in DIVIDERS and not self.at_comment_start():
            self.before = value
        else:
            siblings.append(Space(start, value, self.pos))

    def consume_string(self) -> None:
        start = self.pos
        quote = self.peek(1)
        self.advance(1)

        end = self.find_unescaped(quote, self.pos)
        if end == -1:
            node = String(start, self.content[self.pos :], quote=quote, unclosed=True)
            self.error(f"String not ended with matching `{quote}`.")
            self.pos = len(self.content)
        else:
            node = String(start, self.content[self.pos : end], quote=quote)
            self.pos = end + 1

        node.source_end_index = self.pos
        self.current.append(node)

    def consume_comment(self) -> None:
        start = self.pos
        self.advance(2)  # Consume the /*

        end = self.content.find("*/", self.pos)
        if end == -1:
            node = Comment(start, self.content[self.pos :], unclosed=True)
            self.error("Comment did not close.")
            self.pos = len(self.content)
        else:
            node = Comment(start, self.content[self.pos : end])
            self.pos = end + 2

        node.source_end_index = self.pos
        self.current.append(node)

    def consume_divider(self) -> None:
        start = self.pos - len(self.before)
        value = self.peek(1)
        self.advance(1)

        self.current.append(Div(start, value, self.pos, before=self.before))
        self.before = ""

    def consume_function(self) -> None:
        opening = self.pos
        self.advance(1)
        while not self.eof and self.is_whitespace(self.peek(1)):
            self.advance(1)

        function = Function(
            opening - len(self.name),
            self.name,
            before=self.content[opening + 1 : self.pos],
        )
        self.name = ""

        if function.value.lower() == "url" and self.peek(1) not in QUOTES:
            self.consume_url(function)
            return

        function.source_end_index = self.pos
        self.current.append(function)
        self.stack.append(function)

    def consume_url(self, function: Function) -> None:
        # An unquoted url keeps its whole body as one word, up to the closing `)`
        end = self.find_unescaped(")", self.pos)
        if end == -1:
            function.unclosed = True
            end = len(self.content)
            self.error("Url did not close.")

        last = end
        while last > self.pos and self.is_whitespace(self.content[last - 1]):
            last -= 1

        if last > self.pos:
            function.nodes.append(Word(self.pos, self.content[self.pos : last], last))

        trailing = self.content[last:end]
        if function.unclosed and trailing:
            function.nodes.append(Space(last, trailing, end))
        else:
            function.after = trailing

        self.pos = end if function.unclosed else end + 1
        function.source_end_index = self.pos
        self.current.append(function)

    def close_function(self) -> None:
        function = self.stack.pop()
        self.advance(1)

        function.after = self.after
        function.source_end_index = self.pos
        self.after = ""

    def consume_word(self) -> None:
        start = self.pos
        while True:
            if self.peek(1) == BACKSLASH:
                self.advance(1)
            self.advance(1)
            if self.eof or self.at_word_end():
                break

        value = self.content[start : self.pos]
        if self.peek(1) == "(":
            self.name = value
        else:
            self.current.append(Word(start, value, self.pos))


class ValueParser:
    """The parsed tree of a value, e.g. `1px solid rgb(0, 0, 0)`"""

    def __init__(self, value: str) -> None:
        scanner = Scanner(value)
        self.nodes: List[Node] = scanner.scan()
        self.errors: List[str] = scanner.errors

    def __str__(self) -> str:
        return stringify(self.nodes)

    def __repr__(self) -> str:
        return f"ValueParser({str(self)!r})"

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def walk(self, callback: "WalkCallback", bubble: bool = False) -> "ValueParser":
        walk(self.nodes, callback, bubble)
        return self


def parse(value: str) -> ValueParser:
    return ValueParser(value)


# endregion

# region stringify

CustomStringifier = Callable[[Node], Optional[str]]


class _Closing(NamedTuple):
    text: str


def render(node: Node) -> str:
    if isinstance(node, (Word, Space)):
        return node.value
    elif isinstance(node, String):
        return node.quote + node.value + ("" if node.unclosed else node.quote)
    elif isinstance(node, Div):
        return node.before + node.value + node.after
    elif isinstance(node, Comment):
        return "/*" + node.value + ("" if node.unclosed else "*/")
    elif isinstance(node, Function):
        return stringify(node)

    raise TypeError(f"Unexpected node: {node!r}")


def stringify(
    nodes: Union[Node, Iterable[Node], ValueParser],
    custom: Optional[CustomStringifier] = None,
) -> str:
    """Stringifies a node, a list of nodes or a parsed value

    `custom` is called for each node in document order; returning a string
    replaces the node (and everything inside it), returning None keeps the
    default rendering.
    """
    if isinstance(nodes, ValueParser):
        nodes = nodes.nodes

    if isinstance(nodes, Node):
        nodes = [nodes]
    elif isinstance(nodes, str) or not isinstance(nodes, Iterable):
        raise TypeError(f"Expected a node or nodes, got: {nodes!r}")

    parts: List[str] = []
    # Nodes still to render, and closing text of open functions, last one first
    pending: List[Union[Node, _Closing]] = list(reversed(list(nodes)))

    while pending:
        item = pending.pop()
        if isinstance(item, _Closing):
            parts.append(item.text)
            continue
        elif not isinstance(item, Node):
            raise TypeError(f"Unexpected node: {item!r}")

        if custom is not None:
            result = custom(item)
            if result is not None:
                parts.append(result)
                continue

        if isinstance(item, Function):
            parts.append(f"{item.value}({item.before}")
            pending.append(_Closing(item.after + ("" if item.unclosed else ")")))
            pending.extend(reversed(item.nodes))
        else:
            parts.append(render(item))

    return "".join(parts)


# endregion

# region walk

WalkCallback = Callable[[Node, int, List[Node]], Any]


def walk(nodes: List[Node], callback: WalkCallback, bubble: bool = False) -> None:
    """Walks the nodes, descending into function arguments

    By default parents are visited before their children and returning False
    from the callback skips the children of that node. With `bubble` the
    children are visited first, and the return value is ignored.

    The callback is called with `(node, index, nodes)`, `nodes` being the list
    that holds the node.
    """
    if bubble:
        _walk_bubble(nodes, callback)
    else:
        _walk_descend(nodes, callback)


def _walk_descend(nodes: List[Node], callback: WalkCallback) -> None:
    stack: List[Tuple[List[Node], int]] = [(nodes, 0)]

    while stack:
        siblings, index = stack.pop()
        if index >= len(siblings):
            continue

        node = siblings[index]
        stack.append((siblings, index + 1))

        result = callback(node, index, siblings)
        if result is not False and isinstance(node, Function):
            stack.append((node.nodes, 0))


def _walk_bubble(nodes: List[Node], callback: WalkCallback) -> None:
    # Frames are [siblings, index], the parent of a frame sits one below it
    stack: List[List[Any]] = [[nodes, 0]]

    while stack:
        frame = stack[-1]
        siblings, index = frame

        if index >= len(siblings):
            stack.pop()
            if stack:
                parent = stack[-1]
                callback(parent[0][parent[1]], parent[1], parent[0])
                parent[1] += 1
            continue

        node = siblings[index]
        if isinstance(node, Function) and node.nodes:
            stack.append([node.nodes, 0])
        else:
            callback(node, index, siblings)
            frame[1] += 1


# endregion
