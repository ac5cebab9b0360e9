"""
Unit tests for identifier quoting and placeholder standardization.
"""
import pytest
from entitydb.sql import TokenType, make_placeholders, quote_identifier
from entitydb.sql import standardize_placeholders, tokenize_sql, unquote_identifier


@pytest.mark.parametrize(('dialect', 'identifier', 'expected'), [
    ('mysql', 'users', '`users`'),
    ('mysql', 'we`ird', '`we``ird`'),
    ('postgresql', 'users', '"users"'),
    ('postgresql', 'say "hi"', '"say ""hi"""'),
    ('sqlite', 'a"b', '"a""b"'),
    ('mssql', 'users', '[users]'),
    ('mssql', 'odd]name', '[odd]]name]'),
    ('mssql', 'open[bracket', '[open[bracket]'),
])
def test_quote_identifier(dialect, identifier, expected):
    assert quote_identifier(identifier, dialect) == expected


@pytest.mark.parametrize('dialect', ['mysql', 'postgresql', 'sqlite', 'mssql'])
@pytest.mark.parametrize('identifier', ['plain', 'with space', 'q"u`o]te', ']]', '""'])
def test_quoted_identifier_names_original(dialect, identifier):
    """Quoting then unquoting returns the original identifier"""
    assert unquote_identifier(quote_identifier(identifier, dialect)) == identifier


def test_quote_identifier_unknown_dialect():
    with pytest.raises(ValueError, match='Unknown dialect'):
        quote_identifier('users', 'oracle')


def test_unquote_rejects_bare_text():
    with pytest.raises(ValueError):
        unquote_identifier('users')


def test_make_placeholders():
    assert make_placeholders(3) == '?, ?, ?'
    assert make_placeholders(1) == '?'


class TestStandardizePlaceholders:
    """Conversion of compiler ``?`` markers to driver paramstyles"""

    def test_qmark_style_unchanged(self):
        sql = "SELECT * FROM t WHERE a = ? AND b LIKE 'x%'"
        assert standardize_placeholders(sql, '?') == sql

    def test_format_style_converts_markers(self):
        sql = 'UPDATE "t" SET "a" = ? WHERE "id" = ?'
        assert standardize_placeholders(sql, '%s') == 'UPDATE "t" SET "a" = %s WHERE "id" = %s'

    def test_question_mark_inside_literal_is_kept(self):
        sql = "SELECT 'what?' AS q, \"col?\" FROM t WHERE id = ?"
        expected = "SELECT 'what?' AS q, \"col?\" FROM t WHERE id = %s"
        assert standardize_placeholders(sql, '%s') == expected

    def test_percent_is_doubled_for_format_style(self):
        sql = "SELECT 100 % 7, 'a%b' FROM t WHERE x = ?"
        assert standardize_placeholders(sql, '%s') == "SELECT 100 %% 7, 'a%%b' FROM t WHERE x = %s"

    def test_question_mark_inside_comments_is_kept(self):
        sql = 'SELECT a -- why?\nFROM t /* is b? */ WHERE b = ?'
        expected = 'SELECT a -- why?\nFROM t /* is b? */ WHERE b = %s'
        assert standardize_placeholders(sql, '%s') == expected

    def test_comment_tokens(self):
        sql = "SELECT 1 /* multi\nline ? */ -- tail ?"
        tokens = tokenize_sql(sql)
        comments = [t.text for t in tokens if t.type is TokenType.COMMENT]
        assert comments == ['/* multi\nline ? */', '-- tail ?']
        assert TokenType.QMARK not in {t.type for t in tokens}

    def test_tokenizer_preserves_text(self):
        sql = "SELECT [a]]b], `c`, N'it''s' FROM t WHERE v = ? -- ok"
        tokens = tokenize_sql(sql)
        assert ''.join(t.text for t in tokens) == sql
        assert [t.type for t in tokens].count(TokenType.QMARK) == 1
        assert any(t.type is TokenType.STRING_LITERAL and t.text == "N'it''s'" for t in tokens)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
