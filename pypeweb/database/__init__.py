"""
Database layer: drivers, pooled connections, the query builder, models,
the schema DSL, migrations and seeders.
"""

from pypeweb.database.connection import Connection, ConnectionPool, Database, Result, connect
from pypeweb.database.drivers import Driver, MySQLDriver, PostgresDriver, SQLiteDriver
from pypeweb.database.migrations import Migrator
from pypeweb.database.model import Model, ModelQuery
from pypeweb.database.query import QueryBuilder
from pypeweb.database.schema import Blueprint, Column, Migration, Schema
from pypeweb.database.seeder import DatabaseSeeder, Seeder

__all__ = [
    "Blueprint",
    "Column",
    "Connection",
    "ConnectionPool",
    "Database",
    "DatabaseSeeder",
    "Driver",
    "Migration",
    "Migrator",
    "Model",
    "ModelQuery",
    "MySQLDriver",
    "PostgresDriver",
    "QueryBuilder",
    "Result",
    "SQLiteDriver",
    "Schema",
    "Seeder",
    "connect",
]
