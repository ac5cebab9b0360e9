"""
Unit tests for table metadata resolution and explicit registration.
"""
from dataclasses import InitVar, dataclass
from typing import Annotated, ClassVar
from unittest.mock import patch

import pytest
from entitydb import Column, Id, MappingConfigurationError, ModelBuilder, NotMapped
from entitydb import UsageError, entity, resolve_table_meta
from entitydb.mapping import MappingRegistry, TableMetaCache, to_snake_case

from tests.fixtures.models import OrderLine, Product, Tag, User


@dataclass
class Base:
    id: int | None = None
    createdBy: str = ''


@entity(table='children')
@dataclass
class Child(Base):
    name: str = ''
    scratch: InitVar[int] = 0


@dataclass
class Unmarked(Child):
    extra: str = ''


@entity
@dataclass
class Bare:
    label: str = ''


@entity(table='bad')
@dataclass
class TwoAutoKeys:
    a: Annotated[int, Id()] = 0
    b: Annotated[int, Id()] = 0


class TestSnakeCase:

    @pytest.mark.parametrize(('name', 'expected'), [
        ('placedAt', 'placed_at'),
        ('user_id', 'user_id'),
        ('UserName', 'user_name'),
        ('id', 'id'),
    ])
    def test_to_snake_case(self, name, expected):
        assert to_snake_case(name) == expected


class TestDeclarative:
    """Tables mapped through @entity and Annotated markers"""

    def test_user_mapping(self):
        meta = resolve_table_meta(User)
        assert meta.table == 'users'
        assert list(meta.prop_to_column.items()) == [
            ('id', 'id'), ('user_name', 'username'), ('email', 'email'),
            ('active', 'active'), ('balance', 'balance'), ('created_at', 'created_at')]
        assert meta.auto_key.property == 'id'
        assert meta.single_auto_key is meta.auto_key

    def test_not_mapped_field_is_excluded(self):
        meta = resolve_table_meta(User)
        assert 'nickname' not in meta.prop_to_column
        assert meta.column_for('nickname') is None

    def test_column_hints_are_carried(self):
        meta = resolve_table_meta(User)
        username = meta.column_meta('user_name')
        assert username.nullable is False
        assert username.length == 50
        balance = meta.column_meta('balance')
        assert (balance.precision, balance.scale) == (10, 2)

    def test_keys_are_never_nullable(self):
        meta = resolve_table_meta(User)
        assert meta.column_meta('id').nullable is False

    def test_composite_key_order(self):
        meta = resolve_table_meta(OrderLine)
        assert list(meta.keys) == ['order_id', 'line_no']
        assert meta.auto_key is None
        assert meta.single_auto_key is None

    def test_inherited_fields_come_first_and_get_snake_case(self):
        meta = resolve_table_meta(Child)
        assert meta.table == 'children'
        assert list(meta.prop_to_column.items()) == [
            ('id', 'id'), ('createdBy', 'created_by'), ('name', 'name')]

    def test_initvar_is_skipped(self):
        assert 'scratch' not in resolve_table_meta(Child).prop_to_column

    def test_declarative_without_id_marker_has_no_keys(self):
        meta = resolve_table_meta(Bare)
        assert meta.table == 'bare'
        assert dict(meta.keys) == {}

    def test_entity_marker_is_not_inherited(self):
        meta = resolve_table_meta(Unmarked)
        assert meta.table == 'unmarked'
        assert meta.column_for('createdBy') == 'createdBy'

    def test_second_auto_key_is_rejected(self):
        with pytest.raises(MappingConfigurationError, match='auto primary key'):
            resolve_table_meta(TwoAutoKeys)


class TestConvention:
    """Undecorated classes"""

    def test_tag(self):
        meta = resolve_table_meta(Tag)
        assert meta.table == 'tag'
        assert list(meta.prop_to_column) == ['id', 'label']
        assert meta.auto_key.column == 'id'
        assert meta.column_meta('label').nullable is True

    def test_classvar_is_skipped(self):
        assert 'VERSION' not in resolve_table_meta(Tag).prop_to_column


class TestExplicitMapping:
    """Registry mappings win over markers and convention"""

    def _product_registry(self):
        model = ModelBuilder()
        (model.entity(Product)
            .to_table('products')
            .has_id('id')
            .map('title', 'product_title', nullable=False, length=120)
            .ignore('internal_note')
            .done())
        return model.registry

    def test_registry_mapping(self):
        meta = resolve_table_meta(Product, self._product_registry())
        assert meta.table == 'products'
        assert meta.column_for('title') == 'product_title'
        assert meta.keys['id'].auto is True
        assert meta.mapped_properties() == ['id', 'title']

    def test_ignored_property_stays_readable(self):
        meta = resolve_table_meta(Product, self._product_registry())
        assert meta.is_ignored('internal_note')
        assert 'internal_note' in meta.prop_to_field

    def test_registry_overrides_markers(self):
        model = ModelBuilder()
        model.entity(User).to_table('people').has_id('id').map('user_name', 'login').done()
        meta = resolve_table_meta(User, model.registry)
        assert meta.table == 'people'
        assert list(meta.prop_to_column) == ['id', 'user_name']

    def test_map_on_key_keeps_key(self):
        model = ModelBuilder()
        model.entity(Tag).has_id('id', auto=False).map('id', 'tag_id').done()
        meta = resolve_table_meta(Tag, model.registry)
        assert meta.keys['id'].column == 'tag_id'
        assert meta.keys['id'].auto is False
        assert meta.column_meta('id').nullable is False

    def test_unknown_property_is_rejected(self):
        model = ModelBuilder()
        with pytest.raises(MappingConfigurationError, match='No field'):
            model.entity(Tag).map('missing').done()

    def test_two_auto_keys_are_rejected(self):
        model = ModelBuilder()
        with pytest.raises(MappingConfigurationError, match='auto primary key'):
            model.entity(OrderLine).has_id('order_id').has_id('line_no').done()

    def test_registry_replaces_mapping(self):
        registry = MappingRegistry()
        model = ModelBuilder(registry)
        model.entity(Tag).to_table('t1').map('label').done()
        model.entity(Tag).to_table('t2').map('label').done()
        assert len(registry) == 1
        assert resolve_table_meta(Tag, registry).table == 't2'


class TestTableMeta:

    def test_property_for_column(self):
        meta = resolve_table_meta(User)
        assert meta.property_for_column('username') == 'user_name'
        assert meta.property_for_column('USERNAME') == 'user_name'
        assert meta.property_for_column('nope') is None

    def test_get_and_set(self):
        meta = resolve_table_meta(User)
        user = User(user_name='alice')
        assert meta.get(user, 'user_name') == 'alice'
        meta.set(user, 'user_name', 'bob')
        assert user.user_name == 'bob'

    def test_key_values(self):
        meta = resolve_table_meta(OrderLine)
        assert meta.key_values(OrderLine(order_id=3, line_no=1), 'delete') == [3, 1]

    def test_key_values_reject_none(self):
        meta = resolve_table_meta(User)
        with pytest.raises(UsageError, match='is None'):
            meta.key_values(User(), 'update')

    def test_key_values_require_keys(self):
        meta = resolve_table_meta(Bare)
        with pytest.raises(UsageError, match='has no primary key'):
            meta.key_values(Bare(), 'delete')

    def test_mappings_are_read_only(self):
        meta = resolve_table_meta(User)
        with pytest.raises(TypeError):
            meta.prop_to_column['x'] = 'y'


class TestTableMetaCache:

    def test_resolves_once(self):
        cache = TableMetaCache()
        with patch('entitydb.mapping.resolver.resolve_table_meta',
                   wraps=resolve_table_meta) as resolver:
            first = cache.get(User)
            second = cache.get(User)
        assert first is second
        assert resolver.call_count == 1
        assert User in cache


def test_column_ignore_marker():
    @entity(table='notes')
    @dataclass
    class Note:
        id: Annotated[int | None, Id()] = None
        body: str = ''
        draft: Annotated[str, Column(ignore=True)] = ''
        cache: Annotated[dict, NotMapped()] = None
        VERSION: ClassVar[int] = 2

    meta = resolve_table_meta(Note)
    assert meta.mapped_properties() == ['id', 'body']
    assert meta.is_ignored('draft')
    assert 'cache' not in meta.prop_to_column


if __name__ == '__main__':
    __import__('pytest').main([__file__])
