"""Async Cassandra connection using cassandra-asyncio-driver.

The cluster connection itself is synchronous; queries go through
``session.aexecute()`` so request handlers never block the event loop.
Keyspace and onboarding tables are created on startup.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from onboarding_api.config.settings import Settings, get_settings
from onboarding_api.onboarding.models import ONBOARDING_TABLES_CQL


logger = structlog.get_logger(__name__)


class AsyncCassandraConnection:
    """Cluster and session lifecycle holder (one per process)."""

    _cluster: Cluster | None = None
    _session = None

    @classmethod
    def connect(cls, settings: Settings | None = None):
        """Connect to the cluster, reusing the open session if any.

        Raises:
            ConnectionError: If the cluster cannot be reached.
        """
        if cls._session is not None:
            return cls._session

        settings = settings or get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        """Close session and cluster."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        """Check if connection is active."""
        return cls._session is not None and not cls._session.is_shutdown


async def init_async_keyspace(session, keyspace: str, production: bool) -> None:
    """Create keyspace if not exists."""
    if production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

    await session.aexecute(
        f"""
        CREATE KEYSPACE IF NOT EXISTS {keyspace}
        WITH replication = {{{replication}}}
        AND durable_writes = true
        """
    )
    logger.info("keyspace_ready", keyspace=keyspace)


async def init_async_onboarding_tables(session, keyspace: str) -> None:
    """Create instructor, step, task, content-state and audit tables."""
    for cql_template in ONBOARDING_TABLES_CQL:
        await session.aexecute(cql_template.format(keyspace=keyspace))
    logger.info(
        "onboarding_tables_ready",
        keyspace=keyspace,
        tables=len(ONBOARDING_TABLES_CQL),
    )


async def init_async_cassandra(settings: Settings | None = None):
    """Connect, then create keyspace and tables.

    Returns:
        Session with aexecute() support, bound to the keyspace.
    """
    settings = settings or get_settings()
    session = AsyncCassandraConnection.connect(settings)

    await init_async_keyspace(
        session, settings.cassandra_keyspace, settings.is_production
    )
    session.set_keyspace(settings.cassandra_keyspace)
    await init_async_onboarding_tables(session, settings.cassandra_keyspace)

    return session


async def shutdown_async_cassandra() -> None:
    """Shutdown async Cassandra connection."""
    AsyncCassandraConnection.disconnect()
