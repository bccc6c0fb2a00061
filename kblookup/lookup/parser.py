"""
Parser for lookup expressions.

Grammar (recursive descent over the tokens produced by lexer.tokenize):

    expression := primary ("." IDENTIFIER "(" [args] ")")*
    primary    := IDENTIFIER "(" [args] ")"
                | "this" | "null" | INTEGER | STRING | ID_LITERAL
                | "(" expression ")"
    args       := arg ("," arg)*
    arg        := IDENTIFIER "=" expression | expression

Method-call syntax is sugar: ``x.f(a, k=v)`` parses exactly like
``f(x, a, k=v)``. Every expression's to_text() parses back to an equal tree:

    >>> parse_lookup("this.ancestors()")
    Ancestors(entry_expr=This())
    >>> parse_lookup("this.ancestors()").to_text()
    'ancestors(this)'
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from .errors import LookupParseError
from .expressions import (
    Ancestors, AndAncestors, AndDescendants, Count, Descendants,
    LiteralExpression, LookupExpression, RelatedEntries, Slice, This
)
from .lexer import Token, TokenType, tokenize
from .values import (
    ConcreteValue, EntryTypeValue, EntryValue, IntegerValue, NullValue,
    RelationshipFactValue, RelationshipTypeValue, StringValue
)


# =============================================================================
# Function Registry
# =============================================================================

@dataclass(frozen=True)
class FunctionSpec:
    """
    How a named function maps its arguments onto an expression node.

    Attributes:
        name: Function name as written in expressions
        positional: Number of positional arguments (all required)
        required_keywords: Keyword arguments that must be given
        optional_keywords: Keyword arguments that may be given
        build: Called with the positional args then the keyword args
    """
    name: str
    positional: int
    build: Callable[..., LookupExpression]
    required_keywords: FrozenSet[str] = field(default_factory=frozenset)
    optional_keywords: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def keywords(self) -> FrozenSet[str]:
        return self.required_keywords | self.optional_keywords


FUNCTIONS: Dict[str, FunctionSpec] = {
    spec.name: spec for spec in [
        FunctionSpec("ancestors", 1, Ancestors),
        FunctionSpec("andAncestors", 1, AndAncestors),
        FunctionSpec("descendants", 1, Descendants),
        FunctionSpec("andDescendants", 1, AndDescendants),
        FunctionSpec(
            "related", 1, RelatedEntries,
            required_keywords=frozenset({"via"}), optional_keywords=frozenset({"direction"}),
        ),
        FunctionSpec("count", 1, Count),
        FunctionSpec("slice", 1, Slice, optional_keywords=frozenset({"start", "size"})),
    ]
}

LITERAL_TYPES = {
    'E': EntryValue,
    'ET': EntryTypeValue,
    'RT': RelationshipTypeValue,
    'RF': RelationshipFactValue,
}


# =============================================================================
# Parser
# =============================================================================

class LookupParser:
    """
    Recursive descent parser for one expression string.

    Usage:
        expr = LookupParser("related(this, via=RT[_HAS_A])").parse()
    """

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    # -- token helpers --------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _advance(self) -> Token:
        token = self.current
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def _expect(self, token_type: TokenType) -> Token:
        token = self.current
        if token.type != token_type:
            self._error(f"Expected {token_type.value}, found {self._describe(token)}", token)
        return self._advance()

    def _describe(self, token: Token) -> str:
        if token.type == TokenType.EOF:
            return token.type.value
        if token.type == TokenType.STRING:
            self._advance()
            return LiteralExpression(StringValue(token.value))

        if token.type == TokenType.ID_LITERAL:
            return f"'{token.prefix}[{token.value}]'"
        return f"'{token.value}'"

    def _error(self, message: str, token: Optional[Token] = None):
        token = token or self.current
        raise LookupParseError(message, self.text, token.position)

    # -- grammar --------------------------------------------------------------

    def parse(self) -> LookupExpression:
        """Parse the whole text as one expression."""
        expr = self._expression()
        if self.current.type != TokenType.EOF:
            self._error(f"Unexpected {self._describe(self.current)} after end of expression")
        return expr

    def _expression(self) -> LookupExpression:
        expr = self._primary()
        while self.current.type == TokenType.DOT:
            self._advance()
            name_token = self._expect(TokenType.IDENTIFIER)
            self._expect(TokenType.LPAREN)
            positional, keywords = self._arguments()
            expr = self._call(name_token, [expr] + positional, keywords)
        return expr

    def _primary(self) -> LookupExpression:
        token = self.current

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self.current.type != TokenType.LPAREN:
                self._error(f"Unknown name '{token.value}'", token)
            self._advance()
            positional, keywords = self._arguments()
            return self._call(token, positional, keywords)

        if token.type == TokenType.THIS:
            self._advance()
            return This()

        if token.type == TokenType.NULL:
            self._advance()
            return LiteralExpression(NullValue())

        if token.type == TokenType.INTEGER:
            self._advance()
            return LiteralExpression(IntegerValue(int(token.value)))

        if token.type == TokenType.ID_LITERAL:
            self._advance()
            value: ConcreteValue = LITERAL_TYPES[token.prefix](token.value)
            return LiteralExpression(value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._expression()
            self._expect(TokenType.RPAREN)
            return expr

        self._error(f"Expected an expression, found {self._describe(token)}", token)

    def _arguments(self) -> Tuple[List[LookupExpression], Dict[str, Tuple[Token, LookupExpression]]]:
        """Parse arguments up to and including the closing parenthesis."""
        positional: List[LookupExpression] = []
        keywords: Dict[str, Tuple[Token, LookupExpression]] = {}

        if self.current.type == TokenType.RPAREN:
            self._advance()
            return positional, keywords

        while True:
            if self.current.type == TokenType.IDENTIFIER and self._peek().type == TokenType.EQUALS:
                name_token = self._advance()
                self._advance()
                if name_token.value in keywords:
                    self._error(f"Duplicate keyword argument '{name_token.value}'", name_token)
                keywords[name_token.value] = (name_token, self._expression())
            else:
                if keywords:
                    self._error("Positional argument follows keyword argument")
                positional.append(self._expression())

            if self.current.type == TokenType.COMMA:
                self._advance()
                continue
            self._expect(TokenType.RPAREN)
            return positional, keywords

    def _call(
        self,
        name_token: Token,
        positional: List[LookupExpression],
        keywords: Dict[str, Tuple[Token, LookupExpression]],
    ) -> LookupExpression:
        name = name_token.value
        spec = FUNCTIONS.get(name)
        if spec is None:
            self._error(f"Unknown function '{name}'", name_token)

        if len(positional) != spec.positional:
            self._error(
                f"{name}() takes {spec.positional} positional argument(s) "
                f"but {len(positional)} were given",
                name_token,
            )
        for keyword, (kw_token, _) in keywords.items():
            if keyword not in spec.keywords:
                self._error(f"{name}() got an unexpected keyword argument '{keyword}'", kw_token)
        missing = sorted(spec.required_keywords - keywords.keys())
        if missing:
            self._error(f"{name}() missing required keyword argument '{missing[0]}'", name_token)

        return spec.build(*positional, **{k: expr for k, (_, expr) in keywords.items()})


def parse_lookup(text: str) -> LookupExpression:
    """
    Parse a lookup expression.

    Raises:
        LookupParseError: if the text is not a valid expression
    """
    return LookupParser(text).parse()
