"""
File operation utilities
"""

from pathlib import Path
from typing import List

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.gif', '.tiff', '.webp'}


def get_image_files(directory: str, recursive: bool = True) -> List[str]:
    """Get all image files in directory, sorted by path"""
    path = Path(directory)
    if not path.is_dir():
        raise FileNotFoundError(f"Directory not found: {directory}")

    candidates = path.rglob('*') if recursive else path.glob('*')
    image_files = {
        str(f) for f in candidates
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    }

    return sorted(image_files)

def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
