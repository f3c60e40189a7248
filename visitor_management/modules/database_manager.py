"""
Database Manager Module - Facility Visitor Management System

This module handles all database operations for the visitor system.
It owns the SQLite connection handling, the schema, and the small
key/value settings table used for markers such as the last purge date.

Features:
- Thread-local SQLite connection management
- Idempotent schema creation
- Query / update helpers returning plain dicts
- Nestable transactions with automatic rollback
- Online backup to a separate file
- Translation of sqlite3 errors into StorageError
"""

import sqlite3
import logging
from contextlib import contextmanager
import threading
import os

from visitor_management.modules.errors import StorageError, ConstraintViolationError

SCHEMA_VERSION = '2.1'


class DatabaseManager:
    """
    Database management class for the visitor system.
    Every manager is constructed with one instance of this class.
    """

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row
            # Enable foreign key constraints
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        try:
            yield self._local.connection
        except sqlite3.IntegrityError as e:
            self._local.connection.rollback()
            self.logger.warning(f"Constraint violation: {str(e)}")
            raise ConstraintViolationError(cause=e) from e
        except sqlite3.Error as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise StorageError(cause=e) from e

    def initialize_database(self):
        """
        Create all tables and indexes. Safe to call multiple times.
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS visitors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name VARCHAR(150) NOT NULL,
                    email VARCHAR(150),
                    phone VARCHAR(40),
                    company VARCHAR(150),
                    badge_number VARCHAR(40),
                    staff_contact VARCHAR(150),
                    visitor_type VARCHAR(20) DEFAULT 'general',
                    training_type VARCHAR(20) DEFAULT 'none',
                    last_training_date DATE,
                    training_expires_date DATE,
                    contractor_orientation_completed BOOLEAN DEFAULT 0,
                    general_orientation_completed BOOLEAN DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS visit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    visitor_id INTEGER NOT NULL,
                    device_id VARCHAR(100),
                    check_in_time TIMESTAMP NOT NULL,
                    check_out_time TIMESTAMP,
                    FOREIGN KEY (visitor_id) REFERENCES visitors(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type VARCHAR(50) NOT NULL,
                    visitor_id INTEGER,
                    success BOOLEAN NOT NULL,
                    details TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS system_settings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    setting_key VARCHAR(100) UNIQUE NOT NULL,
                    setting_value TEXT,
                    description TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_visitors_name ON visitors(LOWER(name))")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_visitors_email ON visitors(email)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_visit_log_visitor ON visit_log(visitor_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_visit_log_check_in ON visit_log(check_in_time)")
            # At most one open visit per visitor
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_visit_log_one_open
                ON visit_log(visitor_id) WHERE check_out_time IS NULL
            """)

            self._insert_default_data(cursor)
            conn.commit()

        self.logger.info(f"Database initialized at {self.db_path}")

    def _insert_default_data(self, cursor):
        cursor.execute(
            """INSERT OR IGNORE INTO system_settings (setting_key, setting_value, description)
               VALUES (?, ?, ?)""",
            ('schema_version', SCHEMA_VERSION, 'Visitor database schema version')
        )

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]

            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Returns:
            int: Last inserted row ID for INSERT, affected row count otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            # Inside transaction() the outermost block commits
            if not self.in_transaction():
                conn.commit()

            if query.strip().upper().startswith('INSERT'):
                return cursor.lastrowid
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Transactions nest: writes made through execute_update, or through an
        inner transaction(), are committed or rolled back with the outermost block.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        depth = getattr(self._local, 'transaction_depth', 0)
        with self.get_connection() as conn:
            self._local.transaction_depth = depth + 1
            try:
                yield conn
                if depth == 0:
                    conn.commit()
            except Exception as e:
                if depth == 0:
                    conn.rollback()
                    self.logger.error(f"Transaction rolled back: {str(e)}")
                raise
            finally:
                self._local.transaction_depth = depth

    def in_transaction(self):
        """Whether the calling thread is inside transaction()."""
        return getattr(self._local, 'transaction_depth', 0) > 0

    def backup_database(self, target_path):
        """
        Write a consistent copy of the database to ``target_path``.

        Uses the SQLite online backup API rather than copying the file.

        Returns:
            int: Size of the backup file in bytes
        """
        directory = os.path.dirname(str(target_path))
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self.get_connection() as conn:
            target = sqlite3.connect(str(target_path))
            try:
                conn.backup(target)
            finally:
                target.close()

        size = os.path.getsize(target_path)
        self.logger.info(f"Database backed up to {target_path} ({size} bytes)")
        return size

    def get_file_size(self):
        """Size of the database file on disk in bytes."""
        return os.path.getsize(self.db_path) if os.path.exists(self.db_path) else 0

    def get_system_setting(self, key, default_value=None):
        """
        Get a system setting value by key.

        Args:
            key (str): Setting key
            default_value: Default value if setting not found

        Returns:
            str: Setting value
        """
        result = self.execute_query(
            "SELECT setting_value FROM system_settings WHERE setting_key = ?",
            (key,),
            fetch_all=False
        )
        return result['setting_value'] if result else default_value

    def update_system_setting(self, key, value, description=None, conn=None):
        """
        Update or insert a system setting.

        Pass ``conn`` to write inside a transaction opened by the caller.
        """
        query = """
            INSERT INTO system_settings (setting_key, setting_value, description)
            VALUES (?, ?, ?)
            ON CONFLICT(setting_key) DO UPDATE SET
                setting_value = excluded.setting_value,
                description = COALESCE(excluded.description, system_settings.description),
                updated_at = CURRENT_TIMESTAMP
        """
        if conn is not None:
            conn.execute(query, (key, value, description))
            return

        with self.transaction() as tx:
            tx.execute(query, (key, value, description))

    def close_all_connections(self):
        """Close the calling thread's connection."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection
