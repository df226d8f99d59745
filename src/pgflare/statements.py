"""
SQL statement builders and catalog queries.

The builders are pure string templating: identifiers are quoted with
quote_identifier() and the result is handed to the StatementExecutor.
Catalog queries use named bind parameters and are executed through
SQLAlchemy's text().
"""

from __future__ import annotations

PROBE_TABLE = "flare_replication_status"


def quote_identifier(name: str) -> str:
    """
    Quote an SQL identifier, doubling any embedded double quote.

    Example:
        >>> quote_identifier('my"db')
        '"my""db"'
    """
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote an SQL string literal, doubling any embedded single quote."""
    return "'" + value.replace("'", "''") + "'"


def create_publication(pubname: str) -> str:
    return f"CREATE PUBLICATION {quote_identifier(pubname)} FOR ALL TABLES;"


def drop_publication(pubname: str) -> str:
    return f"DROP PUBLICATION {quote_identifier(pubname)};"


def alter_table_replica_identity_full(table: str) -> str:
    return f"ALTER TABLE {quote_identifier(table)} REPLICA IDENTITY FULL;"


def create_subscription(subname: str, conninfo: str, pubname: str) -> str:
    """
    Build CREATE SUBSCRIPTION.

    Args:
        subname: Subscription name.
        conninfo: libpq connection URI of the publisher as reachable from
            the subscriber.
        pubname: Publication to subscribe to.
    """
    return (
        f"CREATE SUBSCRIPTION {quote_identifier(subname)} "
        f"CONNECTION {quote_literal(conninfo)} "
        f"PUBLICATION {quote_identifier(pubname)};"
    )


def drop_subscription(subname: str) -> str:
    return f"DROP SUBSCRIPTION {quote_identifier(subname)};"


def revoke_connect(dbname: str) -> str:
    return f"REVOKE CONNECT ON DATABASE {quote_identifier(dbname)} FROM PUBLIC;"


def grant_connect(dbname: str) -> str:
    return f"GRANT CONNECT ON DATABASE {quote_identifier(dbname)} TO PUBLIC;"


def create_extension(extname: str) -> str:
    return f"CREATE EXTENSION IF NOT EXISTS {quote_identifier(extname)};"


def grant_create(dbname: str, user: str) -> str:
    return f"GRANT CREATE ON DATABASE {quote_identifier(dbname)} TO {quote_identifier(user)};"


def grant_all_on_database(dbname: str, user: str) -> str:
    return (
        f"GRANT ALL PRIVILEGES ON DATABASE {quote_identifier(dbname)} "
        f"TO {quote_identifier(user)};"
    )


def grant_all_on_all_tables(user: str, schema: str = "public") -> str:
    return (
        f"GRANT ALL PRIVILEGES ON ALL TABLES IN SCHEMA {quote_identifier(schema)} "
        f"TO {quote_identifier(user)};"
    )


def create_database(dbname: str) -> str:
    return f"CREATE DATABASE {quote_identifier(dbname)};"


def drop_database(dbname: str) -> str:
    return f"DROP DATABASE {quote_identifier(dbname)};"


# =============================================================================
# Catalog queries
# =============================================================================

# pg_terminate_backend returns false when the backend was already gone;
# only true results count as terminated sessions.
TERMINATE_SESSIONS = """
    SELECT pg_terminate_backend(pid) AS terminated
    FROM pg_stat_activity
    WHERE pid <> pg_backend_pid()
      AND usename <> 'postgres'
      AND backend_type = 'client backend'
      AND usename = :role
      AND datname = :dbname
"""

LIST_REPLICATION_SLOTS = """
    SELECT slot_name, plugin, slot_type, database, temporary, active,
           confirmed_flush_lsn::text AS confirmed_flush_lsn
    FROM pg_replication_slots
    WHERE database = :dbname
    ORDER BY slot_name
"""

LIST_REPLICATION_STATS = """
    SELECT pid, usename, application_name, client_addr::text AS client_addr,
           backend_start, state,
           sent_lsn::text AS sent_lsn, write_lsn::text AS write_lsn,
           flush_lsn::text AS flush_lsn, replay_lsn::text AS replay_lsn
    FROM pg_stat_replication
    WHERE application_name = :subname
    ORDER BY pid
"""

LIST_SUBSCRIPTION_STATS = """
    SELECT subid, subname, pid, received_lsn::text AS received_lsn,
           last_msg_send_time, last_msg_receipt_time,
           latest_end_lsn::text AS latest_end_lsn, latest_end_time
    FROM pg_stat_subscription
    WHERE subname = :subname
    ORDER BY pid NULLS FIRST
"""

LIST_CONNECTIONS = """
    SELECT datname, pid, usename, application_name, client_addr::text AS client_addr,
           backend_start, wait_event, wait_event_type, state
    FROM pg_stat_activity
    WHERE datname = :dbname
    ORDER BY backend_start
"""

CURRENT_WAL_LSN = "SELECT pg_current_wal_lsn()::text"

LIST_INSTALLED_EXTENSIONS = "SELECT extname FROM pg_extension ORDER BY extname"

SYSTEM_IDENTIFIER = "SELECT system_identifier FROM pg_control_system()"

CREATE_PROBE_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {PROBE_TABLE} (
        system_identifier TEXT NOT NULL,
        token             TEXT NOT NULL,
        created_at        TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
        PRIMARY KEY (system_identifier, token)
    )
"""

INSERT_PROBE_RECORD = f"""
    INSERT INTO {PROBE_TABLE} (system_identifier, token)
    VALUES (:system_identifier, :token)
"""

SELECT_PROBE_RECORD = f"""
    SELECT token FROM {PROBE_TABLE}
    WHERE system_identifier = :system_identifier AND token = :token
"""

DELETE_PROBE_RECORDS = f"""
    DELETE FROM {PROBE_TABLE}
    WHERE system_identifier = :system_identifier
"""

# Schema of the flare_test database used by the traffic generator.
ATTACK_SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS items (
        id   TEXT PRIMARY KEY,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id                TEXT PRIMARY KEY,
        last_keepalive_at TIMESTAMP WITH TIME ZONE NOT NULL
    )
    """,
]

UPSERT_HEARTBEAT = """
    INSERT INTO sessions (id, last_keepalive_at) VALUES (:id, :at)
    ON CONFLICT (id) DO UPDATE SET last_keepalive_at = :at
"""

INSERT_ITEM = "INSERT INTO items (id, name) VALUES (:id, :name)"
