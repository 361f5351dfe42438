from dataclasses import dataclass, field
import yaml
from pathlib import Path

@dataclass
class IndexConfig:
    """Configuration for the vector index and its storage"""
    storage_path: str = "data/vector_db"
    dimension: int = 768  # llava embedding size
    backend: str = "flat"  # Options: flat, faiss
    index_filename: str = "faiss.index"
    metadata_filename: str = "metadata.json"


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding service"""
    base_url: str = "http://localhost:11434"
    model: str = "llava:latest"
    timeout: float = 60.0


@dataclass
class SearchConfig:
    """Configuration for similarity search"""
    similarity_threshold: float = 0.8
    max_results: int = 5


@dataclass
class DuplicateDetectionConfig:
    """Configuration for duplicate detection"""
    similarity_threshold: float = 0.8
    recursive: bool = True


@dataclass
class SystemConfig:
    """System-wide configuration"""
    log_level: str = "INFO"
    log_dir: str = "logs"

    index: IndexConfig = field(default_factory=IndexConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    duplicate_detection: DuplicateDetectionConfig = field(
        default_factory=DuplicateDetectionConfig
    )

    def save(self, path: str = "config.yaml"):
        """Save configuration to YAML file"""
        config_dict = {
            'log_level': self.log_level,
            'log_dir': self.log_dir,
            'index': {
                'storage_path': self.index.storage_path,
                'dimension': self.index.dimension,
                'backend': self.index.backend,
                'index_filename': self.index.index_filename,
                'metadata_filename': self.index.metadata_filename
            },
            'embedding': {
                'base_url': self.embedding.base_url,
                'model': self.embedding.model,
                'timeout': self.embedding.timeout
            },
            'search': {
                'similarity_threshold': self.search.similarity_threshold,
                'max_results': self.search.max_results
            },
            'duplicate_detection': {
                'similarity_threshold': self.duplicate_detection.similarity_threshold,
                'recursive': self.duplicate_detection.recursive
            }
        }

        with open(path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    @classmethod
    def load(cls, path: str = "config.yaml") -> 'SystemConfig':
        """Load configuration from YAML file"""
        if not Path(path).exists():
            return cls()  # Return default config

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        config = cls()

        config.log_level = config_dict.get('log_level', config.log_level)
        config.log_dir = config_dict.get('log_dir', config.log_dir)

        # Index settings
        if 'index' in config_dict:
            ix = config_dict['index']
            config.index = IndexConfig(
                storage_path=ix.get('storage_path', config.index.storage_path),
                dimension=ix.get('dimension', config.index.dimension),
                backend=ix.get('backend', config.index.backend),
                index_filename=ix.get('index_filename', config.index.index_filename),
                metadata_filename=ix.get('metadata_filename', config.index.metadata_filename)
            )

        # Embedding service settings
        if 'embedding' in config_dict:
            em = config_dict['embedding']
            config.embedding = EmbeddingConfig(
                base_url=em.get('base_url', config.embedding.base_url),
                model=em.get('model', config.embedding.model),
                timeout=em.get('timeout', config.embedding.timeout)
            )

        # Similarity search settings
        if 'search' in config_dict:
            ss = config_dict['search']
            config.search = SearchConfig(
                similarity_threshold=ss.get('similarity_threshold', config.search.similarity_threshold),
                max_results=ss.get('max_results', config.search.max_results)
            )

        # Duplicate detection settings
        if 'duplicate_detection' in config_dict:
            dd = config_dict['duplicate_detection']
            config.duplicate_detection = DuplicateDetectionConfig(
                similarity_threshold=dd.get('similarity_threshold', config.duplicate_detection.similarity_threshold),
                recursive=dd.get('recursive', config.duplicate_detection.recursive)
            )

        return config
