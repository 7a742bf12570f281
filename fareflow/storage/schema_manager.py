# fareflow/storage/schema_manager.py
import logging
from typing import List, Dict
import psycopg2
from fareflow.storage.db_service import StorageService
from fareflow.storage.schemas.booking_schema import BookingSchema

logger = logging.getLogger(__name__)


class SchemaManager:
    """
    Manages database schema creation with proper dependency ordering
    """

    def __init__(self, storage: StorageService):
        self.storage = storage

        self.schema_dependencies = {
            'bookings': BookingSchema(),  # bookings, booking_passengers, booking_segments, booking_segment_tickets
        }

        # schema -> list of schemas it depends on
        self.dependencies = {
            'bookings': [],
        }

    def _get_creation_order(self) -> List[str]:
        """
        Calculate the correct order for table creation using topological sort
        """
        visited = set()
        temp_visited = set()
        result = []

        def visit(schema_name):
            if schema_name in temp_visited:
                raise ValueError(f"Circular dependency detected involving {schema_name}")
            if schema_name in visited:
                return

            temp_visited.add(schema_name)
            for dependency in self.dependencies.get(schema_name, []):
                visit(dependency)
            temp_visited.remove(schema_name)
            visited.add(schema_name)
            result.append(schema_name)

        for schema_name in self.dependencies.keys():
            visit(schema_name)

        return result

    def create_all_tables(self) -> bool:
        """
        Create all tables, then all indexes, in dependency order
        """
        if not self.storage.is_available:
            logger.error("No database connection available, skipping schema creation")
            return False

        creation_order = self._get_creation_order()
        logger.info(f"Creating schemas in dependency order: {' -> '.join(creation_order)}")

        try:
            with self.storage.transaction() as cur:
                for schema_name in creation_order:
                    schema = self.schema_dependencies[schema_name]
                    for table_sql in schema.get_table_definitions():
                        cur.execute(table_sql)
                        logger.debug(f"Created table: {schema.table_name_of(table_sql)}")

            with self.storage.transaction() as cur:
                for schema_name in creation_order:
                    schema = self.schema_dependencies[schema_name]
                    for index_sql in schema.get_indexes() + schema.get_migrations():
                        cur.execute(index_sql)

            logger.info("All database schemas created successfully")
            return True

        except psycopg2.Error as e:
            logger.error(f"Schema creation failed: {e}", exc_info=True)
            return False

    def drop_all_tables(self) -> bool:
        """
        Drop all tables in reverse dependency order
        """
        if not self.storage.is_available:
            return False

        drop_order = list(reversed(self._get_creation_order()))
        try:
            with self.storage.transaction() as cur:
                for schema_name in drop_order:
                    schema = self.schema_dependencies[schema_name]
                    for table_sql in reversed(schema.get_table_definitions()):
                        table = schema.table_name_of(table_sql)
                        cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
                        logger.info(f"Dropped table: {table}")
            return True
        except psycopg2.Error as e:
            logger.error(f"Error dropping tables: {e}", exc_info=True)
            return False

    def verify_tables_exist(self) -> bool:
        """
        Verify all required tables exist
        """
        if not self.storage.is_available:
            return False

        try:
            all_tables_exist = True
            with self.storage.transaction() as cur:
                for schema in self.schema_dependencies.values():
                    for table_sql in schema.get_table_definitions():
                        table = schema.table_name_of(table_sql)
                        cur.execute("""
                            SELECT EXISTS (
                                SELECT FROM information_schema.tables
                                WHERE table_schema = 'public'
                                AND table_name = %s
                            );
                        """, (table,))
                        if not cur.fetchone()[0]:
                            logger.warning(f"Table {table} does not exist")
                            all_tables_exist = False
            return all_tables_exist
        except psycopg2.Error as e:
            logger.error(f"Error verifying tables: {e}", exc_info=True)
            return False

    def get_dependency_info(self) -> Dict:
        """
        Get information about table dependencies for debugging
        """
        return {
            'creation_order': self._get_creation_order(),
            'dependencies': self.dependencies,
            'total_schemas': len(self.schema_dependencies)
        }
