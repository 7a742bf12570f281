from abc import ABC, abstractmethod
from typing import List

class BaseSchema(ABC):
    """Base class for all database schemas"""

    def __init__(self):
        self.version = "1.0.0"

    @abstractmethod
    def get_table_definitions(self) -> List[str]:
        """Return list of CREATE TABLE statements"""
        pass

    @abstractmethod
    def get_indexes(self) -> List[str]:
        """Return list of CREATE INDEX statements"""
        pass

    def get_migrations(self) -> List[str]:
        """Return list of ALTER TABLE statements for schema updates"""
        return []

    @staticmethod
    def table_name_of(table_sql: str) -> str:
        return table_sql.split("CREATE TABLE IF NOT EXISTS")[1].split("(")[0].strip()
