import importlib
import sys
from pathlib import Path


def test_circular_dependencies():
    """Test if modules can be imported without circular dependencies"""
    base_dir = Path('src')
    sys.path.insert(0, str(base_dir))

    # In dependency order
    modules = [
        # Independent modules (no internal deps)
        'entitydb.exceptions',
        'entitydb.cache',
        'entitydb.sql',
        'entitydb.types',

        # Strategies and options
        'entitydb.strategy.base',
        'entitydb.strategy',
        'entitydb.strategy.mysql',
        'entitydb.strategy.postgres',
        'entitydb.strategy.sqlite',
        'entitydb.strategy.sqlserver',
        'entitydb.options',

        # Mapping
        'entitydb.mapping.markers',
        'entitydb.mapping.meta',
        'entitydb.mapping.resolver',
        'entitydb.mapping.registry',
        'entitydb.mapping',

        # Execution channel
        'entitydb.connection',
        'entitydb.transaction',

        # Compilers
        'entitydb.select',
        'entitydb.rows',
        'entitydb.query',
        'entitydb.batch',
        'entitydb.context',

        # Main package
        'entitydb',
    ]

    results = {}
    for module in modules:
        print(f'Checking {module}... ', end='')
        try:
            importlib.import_module(module)
            print('✓ Success')
            results[module] = True
        except Exception as e:
            print(f'✗ Failed: {e}')
            results[module] = False

    success = sum(1 for v in results.values() if v)
    total = len(results)
    print(f'\nSummary: {success}/{total} modules imported successfully')

    failures = [m for m, v in results.items() if not v]
    if failures:
        print('\nFailed modules:')
        for module in failures:
            print(f'  - {module}')

    assert success == total, f'{len(failures)} modules failed circular dependency check'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
