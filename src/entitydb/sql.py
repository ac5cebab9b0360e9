"""
SQL text helpers shared by the dialect strategies.

The query and batch compilers always emit ``?`` positional markers. Before a
statement reaches the driver, `standardize_placeholders` rewrites them into
the driver's paramstyle in a single tokenizing pass that leaves string
literals, quoted identifiers and comments untouched.
"""
import re
from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    """Token types identified during SQL scanning."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENTIFIER = auto()
    COMMENT = auto()
    QMARK = auto()
    PERCENT = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL scanning."""
    type: TokenType
    text: str


_TOKENIZE = re.compile(r"""
    (?P<string>N?'(?:[^']|'')*')
    |(?P<ident>"(?:[^"]|"")*"|`(?:[^`]|``)*`|\[(?:[^\]]|\]\])*\])
    |(?P<comment>--[^\n]*|/\*[\s\S]*?\*/)
    |(?P<qmark>\?)
    |(?P<percent>%)
""", re.VERBOSE)

_QUOTES = {
    'mysql': ('`', '`'),
    'postgresql': ('"', '"'),
    'sqlite': ('"', '"'),
    'mssql': ('[', ']'),
}


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into tokens, preserving all text.

    Parameters
        sql: SQL statement

    Returns
        List of tokens whose concatenated text equals the input
    """
    tokens = []
    last_end = 0
    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()
        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start]))
        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('ident'):
            ttype = TokenType.QUOTED_IDENTIFIER
        elif match.group('comment'):
            ttype = TokenType.COMMENT
        elif match.group('qmark'):
            ttype = TokenType.QMARK
        else:
            ttype = TokenType.PERCENT
        tokens.append(Token(ttype, match.group(0)))
        last_end = end
    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:]))
    return tokens


def standardize_placeholders(sql: str, placeholder: str = '?') -> str:
    """Convert ``?`` markers to the driver's placeholder style.

    For format-style drivers (``%s``) every literal percent sign is doubled,
    including those inside string literals, since such drivers interpolate
    the whole statement text.

    Parameters
        sql: SQL statement using ``?`` markers
        placeholder: Target marker, ``?`` or ``%s``

    Returns
        SQL with converted placeholders
    """
    if not sql or placeholder == '?':
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.QMARK:
            result.append(placeholder)
        elif token.type == TokenType.PERCENT:
            result.append('%%')
        elif '%' in token.text:
            result.append(token.text.replace('%', '%%'))
        else:
            result.append(token.text)
    return ''.join(result)


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Safely quote database identifiers.

    The closing quote character inside the identifier is escaped by
    doubling it.

    Parameters
        identifier: Table, column or alias name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported
    """
    if dialect not in _QUOTES:
        raise ValueError(f'Unknown dialect: {dialect}')
    opening, closing = _QUOTES[dialect]
    return opening + identifier.replace(closing, closing * 2) + closing


def unquote_identifier(quoted: str) -> str:
    """Reverse `quote_identifier` for any supported quoting style.
    """
    for opening, closing in _QUOTES.values():
        if len(quoted) >= 2 and quoted[0] == opening and quoted[-1] == closing:
            return quoted[1:-1].replace(closing * 2, closing)
    raise ValueError(f'Not a quoted identifier: {quoted}')


def make_placeholders(count: int) -> str:
    """Return ``count`` comma separated ``?`` markers."""
    return ', '.join(['?'] * count)
