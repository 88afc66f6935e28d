"""Backend selection from settings."""
import structlog

from topiccluster.config.settings import settings
from topiccluster.storage.backend import StorageBackend
from topiccluster.storage.local_storage import LocalStorage


logger = structlog.get_logger(__name__)


def get_storage(backend: str = None) -> StorageBackend:
    """Build the configured storage backend."""
    backend = backend or settings.storage_backend

    if backend == 'local':
        logger.info("using_local_storage", root=settings.local_storage_root)
        return LocalStorage(settings.local_storage_root)

    if backend == 'postgres':
        # Imported here so the local backend works without libpq installed
        from topiccluster.storage.postgres_storage import PostgresStorage

        settings.validate_database_config()
        table = settings.app_config.get('storage', {}).get('table', 'pipeline_records')
        logger.info("using_postgres_storage", host=settings.db_config['host'], table=table)
        return PostgresStorage(settings.database_url, table=table)

    raise ValueError(f"Unknown storage backend: {backend}")
