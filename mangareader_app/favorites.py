import os
import json
import threading
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .log import log


@dataclass
class FavoriteManga:
    """A manga the reader has starred."""
    id: str
    title: str
    cover_image: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "FavoriteManga":
        """Accepts both snake_case and the coverImage key the API returns."""
        if not isinstance(data, dict):
            raise ValueError("Favorite must be an object")
        manga_id = data.get('id')
        title = data.get('title')
        if not isinstance(manga_id, str) or not manga_id:
            raise ValueError("Missing required field: id")
        if not isinstance(title, str) or not title:
            raise ValueError("Missing required field: title")
        cover = data.get('cover_image', data.get('coverImage')) or ""
        description = data.get('description') or ""
        return cls(
            id=manga_id,
            title=title,
            cover_image=cover if isinstance(cover, str) else "",
            description=description if isinstance(description, str) else "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'coverImage': self.cover_image,
            'description': self.description,
        }


# =============================================================================
# PERSISTENCE BACKENDS (key -> JSON-serializable value)
# =============================================================================

class MemoryBackend:
    """Keeps values in a dict. Used in tests and when no file is configured."""
    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileBackend:
    """Stores every key in one JSON object on disk."""
    def __init__(self, filepath: str):
        self.filepath = filepath

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.filepath):
            return {}
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        directory = os.path.dirname(self.filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.filepath}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=4, ensure_ascii=False)
        os.replace(tmp_path, self.filepath)


# =============================================================================
# FAVORITES STORE
# =============================================================================

class FavoritesStore:
    """
    Ordered favorites list over a key-value backend.

    Created once in create_app() and kept on app.extensions['favorites'].
    """
    DEFAULT_KEY = 'manga-favorites-v1'

    def __init__(self, backend=None, key: str = DEFAULT_KEY):
        self.backend = backend if backend is not None else MemoryBackend()
        self.key = key
        self._lock = threading.RLock()

    def _load(self) -> List[FavoriteManga]:
        raw = self.backend.get(self.key)
        if not isinstance(raw, list):
            return []
        favorites = []
        for entry in raw:
            try:
                favorites.append(FavoriteManga.from_dict(entry))
            except ValueError:
                continue
        return favorites

    def _save(self, favorites: List[FavoriteManga]) -> None:
        self.backend.set(self.key, [asdict(f) for f in favorites])

    def list(self) -> List[FavoriteManga]:
        with self._lock:
            return self._load()

    def get(self, manga_id: str) -> Optional[FavoriteManga]:
        with self._lock:
            for favorite in self._load():
                if favorite.id == manga_id:
                    return favorite
        return None

    def is_favorite(self, manga_id: str) -> bool:
        return self.get(manga_id) is not None

    def add(self, manga: FavoriteManga) -> bool:
        """Append a favorite. Returns False if it was already there."""
        with self._lock:
            favorites = self._load()
            if any(f.id == manga.id for f in favorites):
                return False
            favorites.append(manga)
            self._save(favorites)
        log(f"⭐ Added to favorites: {manga.title}")
        return True

    def remove(self, manga_id: str) -> bool:
        """Drop a favorite. Returns False if it wasn't there."""
        with self._lock:
            favorites = self._load()
            remaining = [f for f in favorites if f.id != manga_id]
            if len(remaining) == len(favorites):
                return False
            self._save(remaining)
        log(f"🗑️ Removed from favorites: {manga_id}")
        return True

    def __len__(self) -> int:
        return len(self.list())
