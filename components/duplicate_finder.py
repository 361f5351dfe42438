# components/duplicate_finder.py

import logging
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from components.embedding_client import (
    EmbeddingError,
    EmbeddingGenerator,
    EmbeddingServiceUnavailable,
)
from config import SystemConfig
from core.models import DuplicateGroup, IndexStats, SearchResult
from core.vector_store import ImageVectorStore
from utils.file_utils import get_image_files
from utils.image_utils import get_image_metadata

logger = logging.getLogger(__name__)


class ImageDuplicateFinder:
    """
    Ties directory scanning, embedding generation and the vector index
    together: index folders, look up similar images, group duplicates
    """

    def __init__(self, config: SystemConfig, embedder: EmbeddingGenerator,
                 store: Optional[ImageVectorStore] = None):
        self.config = config
        self.embedder = embedder
        self.store = store or ImageVectorStore.from_config(config.index)

    def initialize(self):
        """Load or create the index"""
        logger.info("Initializing image duplicate finder...")
        self.store.initialize(self.config.index.dimension)

    def _ensure_initialized(self):
        if not self.store.is_initialized:
            self.initialize()

    def index_directory(self, directory: str, skip_existing: bool = True,
                        batch_size: int = 32) -> int:
        """
        Embed and index every image under a directory

        Images that fail to embed or come back with the wrong dimension are
        logged and skipped. An unreachable embedding service aborts the run
        after committing what was already embedded.

        Returns:
            Number of images added to the index
        """
        self._ensure_initialized()
        image_paths = get_image_files(directory, self.config.duplicate_detection.recursive)
        logger.info(f"Found {len(image_paths)} image files in {directory}")

        dimension = self.config.index.dimension
        pending = []
        indexed = 0
        try:
            for image_path in tqdm(image_paths, desc="Indexing images"):
                if skip_existing and self.store.contains(image_path):
                    continue

                try:
                    vector = self.embedder.embed(image_path)
                    metadata = get_image_metadata(image_path)
                except EmbeddingServiceUnavailable:
                    raise
                except (EmbeddingError, OSError) as e:
                    logger.warning(f"Skipping {image_path}: {e}")
                    continue

                if len(vector) != dimension:
                    logger.warning(
                        f"Skipping {image_path}: embedding has {len(vector)} "
                        f"dimensions, index expects {dimension}"
                    )
                    continue

                pending.append({'path': image_path, 'vector': vector, 'metadata': metadata})
                if len(pending) >= batch_size:
                    indexed += self.store.add_vectors(pending)
                    pending = []
        except BaseException:
            # keep what was embedded, but the original error wins
            if pending:
                try:
                    self.store.add_vectors(pending)
                except Exception:
                    logger.exception(f"Could not commit {len(pending)} embedded images")
            raise

        if pending:
            indexed += self.store.add_vectors(pending)

        logger.info(f"Indexed {indexed} new images from {directory}")
        return indexed

    def find_similar_images(self, image_path: str,
                            max_results: Optional[int] = None,
                            threshold: Optional[float] = None) -> List[SearchResult]:
        """Embed a query image and return indexed images similar to it"""
        self._ensure_initialized()
        if not Path(image_path).is_file():
            raise FileNotFoundError(f"File not found: {image_path}")

        if max_results is None:
            max_results = self.config.search.max_results
        if threshold is None:
            threshold = self.config.search.similarity_threshold

        vector = self.embedder.embed(image_path)
        results = self.store.search(vector, max_results, threshold)
        logger.info(f"Found {len(results)} images similar to {image_path}")
        return results

    def find_all_duplicates(self, directory: Optional[str] = None,
                            threshold: Optional[float] = None) -> List[DuplicateGroup]:
        """
        Group every indexed image into duplicate clusters, indexing
        ``directory`` first when one is given
        """
        self._ensure_initialized()
        if directory is not None:
            self.index_directory(directory)

        if threshold is None:
            threshold = self.config.duplicate_detection.similarity_threshold
        return self.store.find_all_duplicate_groups(threshold)

    def remove_image(self, image_path: str) -> bool:
        self._ensure_initialized()
        return self.store.delete_by_path(image_path)

    def reset(self):
        """Wipe the index and start again with an empty one"""
        logger.info("Resetting vector database...")
        self.store.reset()
        self.initialize()

    def stats(self) -> IndexStats:
        return self.store.stats()
