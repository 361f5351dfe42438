# components/embedding_client.py

import base64
import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
import requests

from utils.image_utils import encode_for_embedding

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """The embedding service returned something unusable"""


class EmbeddingServiceUnavailable(EmbeddingError):
    """The embedding service could not be reached or refused the request"""


class EmbeddingGenerator(ABC):
    """Turns an image file into a fixed-length embedding vector"""

    @abstractmethod
    def embed(self, image_path: str) -> np.ndarray:
        """Return the embedding for the image at image_path"""


class OllamaEmbeddingClient(EmbeddingGenerator):
    """
    Embeddings from a multimodal model served by Ollama.

    The image is shrunk to fit max_image_size, base64 encoded and sent to
    the ``/api/embeddings`` endpoint with a blank prompt.
    """

    def __init__(self, base_url: str = "http://localhost:11434",
                 model: str = "llava:latest",
                 timeout: float = 60.0,
                 max_image_size: int = 512):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.max_image_size = max_image_size
        self.dimension: Optional[int] = None

    @classmethod
    def from_config(cls, config) -> 'OllamaEmbeddingClient':
        """Build from an EmbeddingConfig"""
        return cls(base_url=config.base_url, model=config.model,
                   timeout=config.timeout)

    def embed(self, image_path: str) -> np.ndarray:
        image_bytes = encode_for_embedding(image_path, self.max_image_size)
        payload = {
            'model': self.model,
            'prompt': ' ',
            'images': [base64.b64encode(image_bytes).decode('ascii')],
        }

        logger.debug(f"Requesting embedding for {image_path} from {self.model}")
        try:
            response = requests.post(
                f"{self.base_url}/api/embeddings",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise EmbeddingServiceUnavailable(
                f"Embedding service at {self.base_url} unavailable: {e}"
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingError(f"Embedding service returned invalid JSON: {e}") from e

        embedding = data.get('embedding') if isinstance(data, dict) else None
        if not embedding:
            raise EmbeddingError(f"Model {self.model} returned no embedding for {image_path}")

        vector = np.asarray(embedding, dtype=np.float32)
        self.dimension = int(vector.shape[0])
        return vector
