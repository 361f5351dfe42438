# core/models.py

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class ImageMetadata:
    """Descriptive data stored alongside each vector; path is the external key"""
    path: str
    filename: str = ""
    size_bytes: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    indexed_at: Optional[str] = None

    @classmethod
    def for_path(cls, path: str) -> 'ImageMetadata':
        """Minimal metadata when the caller supplies nothing but a path"""
        return cls(path=str(path), filename=Path(path).name)

    @classmethod
    def from_dict(cls, data: Dict) -> 'ImageMetadata':
        if 'path' not in data:
            raise KeyError("metadata record has no 'path'")
        return cls(
            path=str(data['path']),
            filename=data.get('filename') or Path(data['path']).name,
            size_bytes=data.get('size_bytes'),
            width=data.get('width'),
            height=data.get('height'),
            format=data.get('format'),
            created_at=data.get('created_at'),
            modified_at=data.get('modified_at'),
            indexed_at=data.get('indexed_at'),
        )

    def to_dict(self) -> Dict:
        return asdict(self)

    def stamped(self, when: Optional[datetime] = None) -> 'ImageMetadata':
        """Copy with indexed_at set to the given (or current) time"""
        when = when or datetime.now()
        return replace(self, indexed_at=when.isoformat())


@dataclass(frozen=True)
class VectorRecord:
    """One indexed embedding; the vector is a read-only float32 array"""
    id: int
    vector: np.ndarray
    metadata: ImageMetadata

    @property
    def path(self) -> str:
        return self.metadata.path


@dataclass
class IndexState:
    """
    Everything needed to rebuild an index: dimension, id counter and records
    in insertion order
    """
    dimension: Optional[int] = None
    next_id: int = 0
    records: List[VectorRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class SearchResult:
    """Container for search results"""
    path: str
    similarity: float
    id: int
    metadata: ImageMetadata

    def to_dict(self) -> Dict:
        return {'path': self.path, 'similarity': float(self.similarity)}


@dataclass
class DuplicateGroup:
    """
    A representative path and the paths found similar to it.

    Scores hold each member's similarity against the representative.
    """
    representative: str
    members: Tuple[str, ...]
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def all_paths(self) -> Tuple[str, ...]:
        return (self.representative,) + tuple(self.members)

    def __contains__(self, path: str) -> bool:
        return path == self.representative or path in self.members

    def to_dict(self) -> Dict:
        return {
            'representative': self.representative,
            'members': [
                {'path': p, 'similarity': float(self.scores.get(p, 0.0))}
                for p in self.members
            ],
        }


@dataclass
class IndexStats:
    total_vectors: int
    dimension: Optional[int]
    storage_path: str
    index_artifact_size_bytes: int
    metadata_artifact_size_bytes: int
    last_modified: Optional[str]
    backend: str = "flat"

    def to_dict(self) -> Dict:
        return asdict(self)
