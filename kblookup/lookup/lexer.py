"""
Tokenizer for lookup expressions.

Token set:
    IDENTIFIER  ancestors, related, via, ...
    THIS, NULL  the keywords 'this' and 'null'
    INTEGER     42, -7
    STRING      "from", "both" (a backslash escapes the next character)
    ID_LITERAL  E[_abc], ET[...], RT[...], RF[...]
    LPAREN RPAREN COMMA DOT EQUALS
    EOF

Whitespace between tokens is ignored.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import LookupParseError


class TokenType(Enum):
    IDENTIFIER = "identifier"
    INTEGER = "integer"
    STRING = "string"
    ID_LITERAL = "id literal"
    THIS = "'this'"
    NULL = "'null'"
    LPAREN = "'('"
    RPAREN = "')'"
    COMMA = "','"
    DOT = "'.'"
    EQUALS = "'='"
    EOF = "end of expression"


@dataclass(frozen=True)
class Token:
    """
    A single token.

    For ID_LITERAL tokens, prefix holds the literal kind (E, ET, RT, RF) and
    value holds the id between the brackets.
    """
    type: TokenType
    value: str
    position: int
    prefix: Optional[str] = None


KEYWORDS = {
    'this': TokenType.THIS,
    'null': TokenType.NULL,
}

PUNCTUATION = {
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
    '=': TokenType.EQUALS,
}

_WHITESPACE = re.compile(r'\s+')
# Must be tried before identifiers: 'E' alone is a valid identifier
_ID_LITERAL = re.compile(r'(RF|RT|ET|E)\[([^\]]*)\]')
_ID_VALUE = re.compile(r'^[A-Za-z0-9_\-]+$')
_INTEGER = re.compile(r'-?[0-9]+')
_STRING = re.compile(r'"((?:[^"\\]|\\.)*)"')
_ESCAPE = re.compile(r'\\(.)')
_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


def tokenize(text: str) -> List[Token]:
    """
    Split an expression into tokens, ending with an EOF token.

    Raises:
        LookupParseError: on a character that can't start any token, or on
            a bracketed literal whose id contains invalid characters
    """
    tokens: List[Token] = []
    pos = 0
    length = len(text)

    while pos < length:
        match = _WHITESPACE.match(text, pos)
        if match:
            pos = match.end()
            continue

        char = text[pos]
        if char in PUNCTUATION:
            tokens.append(Token(PUNCTUATION[char], char, pos))
            pos += 1
            continue

        if char == '"':
            match = _STRING.match(text, pos)
            if not match:
                raise LookupParseError("Unterminated string", text, pos)
            tokens.append(Token(TokenType.STRING, _ESCAPE.sub(r'\1', match.group(1)), pos))
            pos = match.end()
            continue

        match = _ID_LITERAL.match(text, pos)
        if match:
            prefix, id_value = match.group(1), match.group(2)
            if not _ID_VALUE.match(id_value):
                raise LookupParseError(
                    f"Invalid identifier in {prefix}[...] literal", text, pos
                )
            tokens.append(Token(TokenType.ID_LITERAL, id_value, pos, prefix=prefix))
            pos = match.end()
            continue

        match = _INTEGER.match(text, pos)
        if match:
            tokens.append(Token(TokenType.INTEGER, match.group(0), pos))
            pos = match.end()
            continue

        match = _IDENTIFIER.match(text, pos)
        if match:
            word = match.group(0)
            tokens.append(Token(KEYWORDS.get(word, TokenType.IDENTIFIER), word, pos))
            pos = match.end()
            continue

        raise LookupParseError(f"Unexpected character {char!r}", text, pos)

    tokens.append(Token(TokenType.EOF, "", length))
    return tokens
