"""
Unit tests for dialect DDL, type resolution, INSERT rendering and pagination.
"""
import datetime
import uuid
from dataclasses import dataclass
from typing import Annotated

import numpy as np
import pandas as pd
import pytest
from entitydb import Column, Id, entity, get_strategy, resolve_table_meta
from entitydb.strategy import SqlDialectType

from tests.fixtures.models import OrderLine, User


@entity(table='typed')
@dataclass
class Typed:
    id: Annotated[np.int32 | None, Id()] = None
    code: Annotated[str, Column(type='varchar', length=30)] = ''
    ratio: Annotated[float, Column(type='decimal', precision=8, scale=3)] = 0.0
    ref: uuid.UUID | None = None
    small: np.int16 = 0
    seen_at: pd.Timestamp | None = None
    blob: bytes | None = None
    flag: Annotated[bool, Column(default=True)] = True
    status: Annotated[str, Column(default="'new'", length=0)] = 'new'


@entity(table='keyed_by_code')
@dataclass
class CodeKeyed:
    code: Annotated[str | None, Id()] = None
    label: str = ''


USERS_DDL = {
    'sqlite': (
        'CREATE TABLE "users" (\n'
        '  "id" INTEGER PRIMARY KEY AUTOINCREMENT,\n'
        '  "username" TEXT NOT NULL,\n'
        '  "email" TEXT,\n'
        '  "active" INTEGER,\n'
        '  "balance" NUMERIC,\n'
        '  "created_at" TEXT\n'
        ')'),
    'mysql': (
        'CREATE TABLE `users` (\n'
        '  `id` BIGINT AUTO_INCREMENT NOT NULL,\n'
        '  `username` VARCHAR(50) NOT NULL,\n'
        '  `email` VARCHAR(255),\n'
        '  `active` TINYINT(1),\n'
        '  `balance` DECIMAL(10,2),\n'
        '  `created_at` DATETIME(6),\n'
        '  PRIMARY KEY (`id`)\n'
        ')'),
    'postgresql': (
        'CREATE TABLE "users" (\n'
        '  "id" BIGINT GENERATED BY DEFAULT AS IDENTITY NOT NULL,\n'
        '  "username" VARCHAR(50) NOT NULL,\n'
        '  "email" VARCHAR(255),\n'
        '  "active" BOOLEAN,\n'
        '  "balance" NUMERIC(10,2),\n'
        '  "created_at" TIMESTAMP(6),\n'
        '  PRIMARY KEY ("id")\n'
        ')'),
    'mssql': (
        'CREATE TABLE [users] (\n'
        '  [id] BIGINT IDENTITY(1,1) NOT NULL,\n'
        '  [username] NVARCHAR(50) NOT NULL,\n'
        '  [email] NVARCHAR(255),\n'
        '  [active] BIT,\n'
        '  [balance] DECIMAL(10,2),\n'
        '  [created_at] DATETIME2(6),\n'
        '  PRIMARY KEY ([id])\n'
        ')'),
}


def column_types(dialect, type_):
    """Map of column name to resolved SQL type for every mapped column."""
    strategy = get_strategy(dialect)
    meta = resolve_table_meta(type_)
    return {
        meta.column_for(p): strategy.resolve_sql_type(meta, meta.prop_to_field[p], meta.column_meta(p))
        for p in meta.mapped_properties()
    }


class TestCreateTable:
    """CREATE/DROP TABLE rendering per backend"""

    @pytest.mark.parametrize('dialect', list(USERS_DDL))
    def test_users_ddl(self, dialect):
        meta = resolve_table_meta(User)
        assert get_strategy(dialect).create_table_ddl(meta) == USERS_DDL[dialect]

    def test_sqlite_inline_key_has_no_table_level_primary_key(self):
        ddl = get_strategy('sqlite').create_table_ddl(resolve_table_meta(User))
        assert '"id" INTEGER PRIMARY KEY AUTOINCREMENT' in ddl
        assert 'PRIMARY KEY (' not in ddl

    def test_sqlite_composite_key_uses_table_clause(self):
        ddl = get_strategy('sqlite').create_table_ddl(resolve_table_meta(OrderLine))
        assert ddl == (
            'CREATE TABLE "order_lines" (\n'
            '  "order_id" INTEGER NOT NULL,\n'
            '  "line_no" INTEGER NOT NULL,\n'
            '  "sku" TEXT,\n'
            '  "qty" INTEGER,\n'
            '  PRIMARY KEY ("order_id", "line_no")\n'
            ')')

    def test_sqlite_text_auto_key_falls_back_to_table_clause(self):
        ddl = get_strategy('sqlite').create_table_ddl(resolve_table_meta(CodeKeyed))
        assert 'AUTOINCREMENT' not in ddl
        assert '"code" TEXT NOT NULL' in ddl
        assert 'PRIMARY KEY ("code")' in ddl

    @pytest.mark.parametrize(('dialect', 'prefix'), [
        ('sqlite', 'CREATE TABLE IF NOT EXISTS "users" ('),
        ('mysql', 'CREATE TABLE IF NOT EXISTS `users` ('),
        ('postgresql', 'CREATE TABLE IF NOT EXISTS "users" ('),
    ])
    def test_create_if_not_exists(self, dialect, prefix):
        ddl = get_strategy(dialect).create_table_ddl(resolve_table_meta(User), True)
        assert ddl.startswith(prefix)

    def test_sqlserver_create_guard_uses_catalog_check(self):
        strategy = get_strategy('mssql')
        meta = resolve_table_meta(User)
        ddl = strategy.create_table_ddl(meta, True)
        assert not strategy.supports_create_if_not_exists()
        assert ddl == f"IF OBJECT_ID(N'users', N'U') IS NULL\nBEGIN\n{USERS_DDL['mssql']}\nEND"

    @pytest.mark.parametrize(('dialect', 'expected'), [
        ('sqlite', 'DROP TABLE IF EXISTS "users"'),
        ('mysql', 'DROP TABLE IF EXISTS `users`'),
        ('postgresql', 'DROP TABLE IF EXISTS "users"'),
        ('mssql', 'DROP TABLE IF EXISTS [users]'),
    ])
    def test_drop_if_exists(self, dialect, expected):
        meta = resolve_table_meta(User)
        assert get_strategy(dialect).drop_table_ddl(meta, True) == expected
        assert get_strategy(dialect).drop_table_ddl(meta) == expected.replace(' IF EXISTS', '')


class TestTypeResolution:
    """Override, precision, length, built-in table, fallback"""

    def test_mysql_types(self):
        types = column_types('mysql', Typed)
        assert types['id'] == 'INT'
        assert types['code'] == 'VARCHAR(30)'
        assert types['ratio'] == 'DECIMAL(8,3)'
        assert types['ref'] == 'CHAR(36)'
        assert types['small'] == 'SMALLINT'
        assert types['seen_at'] == 'DATETIME(6)'
        assert types['blob'] == 'VARCHAR(255)'

    def test_postgres_types(self):
        types = column_types('postgresql', Typed)
        assert types['code'] == 'VARCHAR(30)'
        assert types['ratio'] == 'NUMERIC(8,3)'
        assert types['ref'] == 'UUID'
        assert types['seen_at'] == 'TIMESTAMP(6) WITH TIME ZONE'

    def test_sqlserver_types(self):
        types = column_types('mssql', Typed)
        assert types['ref'] == 'UNIQUEIDENTIFIER'
        assert types['flag'] == 'BIT'
        assert types['blob'] == 'NVARCHAR(255)'

    def test_sqlite_types_use_affinities(self):
        types = column_types('sqlite', Typed)
        assert types['code'] == 'TEXT'
        assert types['ratio'] == 'NUMERIC'
        assert types['ref'] == 'TEXT'
        assert types['small'] == 'INTEGER'
        assert types['blob'] == 'TEXT'

    def test_postgres_identity_follows_integer_width(self):
        ddl = get_strategy('postgresql').create_table_ddl(resolve_table_meta(Typed))
        assert '"id" INTEGER GENERATED BY DEFAULT AS IDENTITY NOT NULL' in ddl

    @pytest.mark.parametrize(('dialect', 'flag', 'status'), [
        ('mysql', '`flag` TINYINT(1) DEFAULT 1', "`status` VARCHAR(255) DEFAULT 'new'"),
        ('postgresql', '"flag" BOOLEAN DEFAULT TRUE', '"status" VARCHAR(255) DEFAULT \'new\''),
        ('sqlite', '"flag" INTEGER DEFAULT 1', '"status" TEXT DEFAULT \'new\''),
    ])
    def test_default_literals(self, dialect, flag, status):
        ddl = get_strategy(dialect).create_table_ddl(resolve_table_meta(Typed))
        assert flag in ddl
        assert status in ddl

    def test_effective_type_composes_precision(self):
        meta = resolve_table_meta(Typed)
        assert meta.column_meta('ratio').effective_type() == 'decimal(8,3)'
        assert meta.column_meta('code').effective_type() == 'varchar'
        assert meta.column_meta('ref').effective_type() == ''


class TestInsertSql:

    @pytest.mark.parametrize(('dialect', 'expected'), [
        ('sqlite', 'INSERT INTO "users" ("username", "email") VALUES (?, ?)'),
        ('mysql', 'INSERT INTO `users` (`username`, `email`) VALUES (?, ?)'),
        ('mssql', 'INSERT INTO [users] ([username], [email]) VALUES (?, ?)'),
        ('postgresql', 'INSERT INTO "users" ("username", "email") VALUES (?, ?) RETURNING "id"'),
    ])
    def test_single_row(self, dialect, expected):
        strategy = get_strategy(dialect)
        meta = resolve_table_meta(User)
        assert strategy.build_insert_sql(meta, ['username', 'email']) == expected
        assert strategy.use_insert_returning() is (dialect == 'postgresql')

    def test_multi_row(self):
        sql = get_strategy('sqlite').build_multi_insert_sql(resolve_table_meta(User), ['username', 'email'], 3)
        assert sql == 'INSERT INTO "users" ("username", "email") VALUES (?, ?), (?, ?), (?, ?)'

    def test_postgres_without_auto_key_has_no_returning(self):
        sql = get_strategy('postgresql').build_insert_sql(resolve_table_meta(OrderLine), ['order_id'])
        assert 'RETURNING' not in sql


class TestPagination:

    @pytest.mark.parametrize('dialect', ['sqlite', 'mysql', 'postgresql'])
    def test_limit_offset(self, dialect):
        sql = get_strategy(dialect).paginate('SELECT * FROM t', None, 10, 5)
        assert sql == 'SELECT * FROM t LIMIT 10 OFFSET 5'

    @pytest.mark.parametrize(('dialect', 'expected'), [
        ('sqlite', 'SELECT * FROM t LIMIT -1 OFFSET 5'),
        ('mysql', 'SELECT * FROM t LIMIT 18446744073709551615 OFFSET 5'),
        ('postgresql', 'SELECT * FROM t OFFSET 5'),
        ('mssql', 'SELECT * FROM t ORDER BY (SELECT 1) OFFSET 5 ROWS'),
    ])
    def test_offset_without_limit(self, dialect, expected):
        assert get_strategy(dialect).paginate('SELECT * FROM t', None, None, 5) == expected

    def test_sqlserver_offset_fetch_with_dummy_order(self):
        sql = get_strategy('mssql').paginate('SELECT * FROM [t]', None, 10, 5)
        assert sql == 'SELECT * FROM [t] ORDER BY (SELECT 1) OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY'

    def test_sqlserver_keeps_existing_order_by(self):
        sql = get_strategy('mssql').paginate('SELECT * FROM [t] ORDER BY [id] ASC', '[id] ASC', 10, None)
        assert sql == 'SELECT * FROM [t] ORDER BY [id] ASC OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY'

    def test_default_rule_adds_missing_order_by(self):
        sql = get_strategy('sqlite').paginate('SELECT * FROM t', '"id" DESC', 3, None)
        assert sql == 'SELECT * FROM t ORDER BY "id" DESC LIMIT 3'

    @pytest.mark.parametrize('dialect', ['sqlite', 'mysql', 'postgresql'])
    def test_no_dummy_order_outside_sqlserver(self, dialect):
        sql = get_strategy(dialect).paginate('SELECT * FROM t', None, 10, 5)
        assert 'ORDER BY' not in sql

    @pytest.mark.parametrize('dialect', ['sqlite', 'mysql', 'postgresql', 'mssql'])
    def test_nothing_to_paginate(self, dialect):
        assert get_strategy(dialect).paginate('SELECT 1', None, None, None) == 'SELECT 1'


class TestDialectLookup:

    @pytest.mark.parametrize(('name', 'expected'), [
        ('mysql', SqlDialectType.MYSQL),
        ('MariaDB', SqlDialectType.MYSQL),
        ('postgres', SqlDialectType.POSTGRES),
        ('PostgreSQL', SqlDialectType.POSTGRES),
        ('Microsoft SQL Server', SqlDialectType.SQLSERVER),
        ('sqlserver', SqlDialectType.SQLSERVER),
        ('mssql', SqlDialectType.SQLSERVER),
        ('SQLite', SqlDialectType.SQLITE),
    ])
    def test_from_name(self, name, expected):
        assert SqlDialectType.from_name(name) is expected

    def test_strategy_instances_are_cached(self):
        assert get_strategy('sqlite') is get_strategy(SqlDialectType.SQLITE)
        assert get_strategy('sqlite').dialect is SqlDialectType.SQLITE


def test_datetime_keys_resolve_through_mro():
    """datetime is a date subclass; the more specific entry wins"""
    strategy = get_strategy('mysql')
    assert strategy.builtin_type(datetime.datetime) == 'DATETIME(6)'
    assert strategy.builtin_type(datetime.date) == 'DATE'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
