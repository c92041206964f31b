"""Versioned storefront schema.

Each ``database/schema/vN.py`` module exposes a ``schema`` dict. The newest one
describes the full set of tables; older ones only matter for their
``migrations`` list, which upgrades a database created at the previous version.
Applied versions are recorded in ``schema_version``.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

def column_sql(col: Dict[str, Any]) -> str:
    """Render one column definition, without key constraints."""
    parts = [col['name'], col['type']]
    if 'default' in col:
        parts.append(f"DEFAULT {col['default']}")
    if col.get('nullable') is False:
        parts.append('NOT NULL')
    if 'check' in col:
        parts.append(f"CHECK ({col['check']})")
    return ' '.join(parts)

def table_constraints_sql(table: Dict[str, Any]) -> List[str]:
    """Primary key and unique constraints declared on a table."""
    constraints = []
    for col in table['columns']:
        if col.get('primary_key'):
            constraints.append(f"PRIMARY KEY ({col['name']})")
        elif col.get('unique'):
            constraints.append(f"UNIQUE ({col['name']})")

    if isinstance(table.get('primary_key'), list):
        constraints.append(f"PRIMARY KEY ({', '.join(table['primary_key'])})")

    # Composite uniques, e.g. one wishlist row per (user_id, product_id)
    for columns in table.get('unique', []):
        constraints.append(f"UNIQUE ({', '.join(columns)})")
    return constraints

class SchemaManager:
    """Brings a database up to the newest schema version."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        self.pool = pool
        self._schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0
        self._schema_files = {}

    async def initialize(self) -> None:
        """Read the applied version and upgrade to the newest schema module.

        Raises:
            DatabaseSchemaError: If no schema module is found or an upgrade fails
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                ''')
                self.current_version = await conn.fetchval(
                    'SELECT coalesce(max(version), 0) FROM schema_version'
                )

            versions = self._load_schema_files()
            if not versions:
                raise DatabaseSchemaError(f"No schema modules found in {self._schema_dir}")

            await self._upgrade(versions)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema setup failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    async def reset(self) -> None:
        """Drop the storefront tables and forget the applied version."""
        async with self.pool.acquire() as conn:
            await self._drop_all_tables(conn)
            await conn.execute('DROP TABLE IF EXISTS schema_version')
        self.current_version = 0

    def _load_schema_files(self) -> Dict[int, Dict[str, Any]]:
        """Import every vN.py module, keyed and sorted by version."""
        versions = {}
        if not self._schema_dir.exists():
            return versions

        for path in self._schema_dir.glob('v*.py'):
            try:
                number = int(path.stem[1:])
            except ValueError:
                logger.warning(f"Ignoring {path.name}: not a vN.py schema module")
                continue

            module = importlib.import_module(f"database.schema.{path.stem}")
            schema = getattr(module, 'schema', None)
            if schema is None:
                raise DatabaseSchemaError(f"{path.name} defines no 'schema'")
            if schema['version'] != number:
                raise DatabaseSchemaError(
                    f"{path.name} declares version {schema['version']}"
                )
            versions[number] = schema

        self._schema_files = dict(sorted(versions.items()))
        return self._schema_files

    async def _upgrade(self, versions: Dict[int, Dict[str, Any]]) -> None:
        """Create the newest schema, or run the migrations still pending."""
        target = max(versions)
        if self.current_version >= target:
            logger.info(f"Schema at version {self.current_version}")
            return

        logger.info(f"Upgrading schema {self.current_version} -> {target}")
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if self.current_version == 0:
                        await self._create_fresh_schema(conn, versions[target])
                    else:
                        pending = [v for v in versions if v > self.current_version]
                        for version in pending:
                            for statement in versions[version].get('migrations', []):
                                await conn.execute(statement)
                            await conn.execute(
                                'INSERT INTO schema_version (version) VALUES ($1)',
                                version
                            )
                            logger.info(f"Applied schema migration v{version}")
            self.current_version = target

        except Exception as e:
            logger.error(f"Schema upgrade failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema migrations: {e}")

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        await self._drop_all_tables(conn)

        # Foreign keys reference other tables, so they go in after all tables exist
        for table in schema.get('tables', []):
            await self._create_table(conn, table)
        for table in schema.get('tables', []):
            await self._add_constraints(conn, table)

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Created storefront schema v{schema['version']}")

    async def _drop_all_tables(self, conn) -> None:
        rows = await conn.fetch('''
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name <> 'schema_version'
        ''')
        for row in rows:
            await conn.execute(f'DROP TABLE IF EXISTS {row["table_name"]} CASCADE')
        if rows:
            logger.info(f"Dropped {len(rows)} tables")

    async def _create_table(self, conn, table: Dict[str, Any]) -> None:
        body = ',\n'.join(
            [column_sql(col) for col in table['columns']] + table_constraints_sql(table)
        )
        await conn.execute(f"CREATE TABLE IF NOT EXISTS {table['name']} (\n{body}\n)")
        logger.debug(f"Created table {table['name']}")

    async def _add_constraints(self, conn, table: Dict[str, Any]) -> None:
        """Foreign keys and secondary indexes of one table."""
        name = table['name']
        for fk in table.get('foreign_keys', []):
            on_delete = f" ON DELETE {fk['on_delete']}" if 'on_delete' in fk else ''
            await conn.execute(
                f"ALTER TABLE {name} "
                f"ADD CONSTRAINT fk_{name}_{fk['columns'][0]} "
                f"FOREIGN KEY ({', '.join(fk['columns'])}) "
                f"REFERENCES {fk['references']}{on_delete}"
            )

        for idx in table.get('indexes', []):
            unique = 'UNIQUE ' if idx.get('unique') else ''
            where = f" WHERE {idx['where']}" if 'where' in idx else ''
            await conn.execute(
                f"CREATE {unique}INDEX IF NOT EXISTS {idx['name']} "
                f"ON {name} ({', '.join(idx['columns'])}){where}"
            )
