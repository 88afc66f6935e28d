import os
import yaml
from pathlib import Path
from dotenv import load_dotenv
from typing import Dict, Any

# Load environment variables
load_dotenv()

PIPELINE_STAGES = ('ingest', 'cluster', 'analyze', 'storylines', 'sitegen')


class Settings:
    def __init__(self, config_dir: str = None):
        self.base_dir = Path(__file__).parent.parent.parent
        self.config_dir = Path(
            config_dir or os.getenv('TOPICCLUSTER_CONFIG_DIR', self.base_dir / "config")
        )

        # Load YAML configuration
        self.app_config = self._load_yaml('config.yaml')

        # Application Settings
        self.log_level = os.getenv('LOG_LEVEL', 'INFO')
        self.log_file = os.getenv('LOG_FILE')
        self.environment = os.getenv('ENVIRONMENT', 'production')

        # Storage Settings
        storage_config = self.app_config.get('storage', {})
        self.storage_backend = os.getenv('STORAGE_BACKEND', storage_config.get('backend', 'local'))
        self.local_storage_root = os.getenv(
            'LOCAL_STORAGE_ROOT', storage_config.get('local_root', '.local-storage')
        )

        # Database Configuration - only needed by the postgres backend
        self.db_config = {
            'host': os.getenv('DB_HOST'),
            'port': int(os.getenv('DB_PORT', 5432)),
            'database': os.getenv('DB_NAME'),
            'username': os.getenv('DB_USER'),
            'password': os.getenv('DB_PASSWORD'),
            'sslmode': os.getenv('DB_SSLMODE', 'require')
        }

        if self.storage_backend == 'postgres':
            self.validate_database_config()

        validate_clustering_config(self.app_config.get('clustering', {}))
        validate_pipeline_config(self.app_config.get('pipeline', {}))

    def validate_database_config(self):
        """Fail fast when the postgres backend is selected without credentials"""
        required_db_fields = ['host', 'database', 'username', 'password']
        missing_fields = [field for field in required_db_fields if not self.db_config[field]]
        if missing_fields:
            raise ValueError(f"Missing required database configuration: {missing_fields}")

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        """Load YAML configuration file"""
        config_path = self.config_dir / filename
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    @property
    def database_url(self) -> str:
        """Build PostgreSQL connection string for the record store"""
        return (
            f"postgresql://{self.db_config['username']}:{self.db_config['password']}"
            f"@{self.db_config['host']}:{self.db_config['port']}"
            f"/{self.db_config['database']}?sslmode={self.db_config['sslmode']}"
        )


def validate_clustering_config(clustering_config: Dict[str, Any]) -> None:
    """Reject threshold combinations that make assignment and merging disagree."""
    similarity_threshold = clustering_config.get('similarity_threshold', 0.72)
    merge_threshold = clustering_config.get('merge_threshold', 0.85)
    min_cluster_size = clustering_config.get('min_cluster_size', 3)

    if not 0 < similarity_threshold <= 1:
        raise ValueError(f"similarity_threshold must be in (0, 1], got {similarity_threshold}")
    if not similarity_threshold < merge_threshold <= 1:
        raise ValueError(
            f"merge_threshold ({merge_threshold}) must be greater than "
            f"similarity_threshold ({similarity_threshold}) and at most 1"
        )
    if min_cluster_size < 1:
        raise ValueError(f"min_cluster_size must be at least 1, got {min_cluster_size}")


def validate_pipeline_config(pipeline_config: Dict[str, Any]) -> None:
    lock_timeout = pipeline_config.get('lock_timeout_minutes', 15)
    if lock_timeout <= 0:
        raise ValueError(f"lock_timeout_minutes must be positive, got {lock_timeout}")


# Global settings instance
settings = Settings()
