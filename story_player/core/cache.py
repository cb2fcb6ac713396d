"""
Cache management for story ideas, generated images and synthesized speech.
"""

import json
import hashlib
import random
import shutil
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Dict, Any


def compute_text_hash(text: str) -> str:
    """Compute MD5 hash of text content."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class CacheManager:
    """
    Manages on-disk caching of backend responses.

    Images are stored as base64 text keyed by the prompt hash, speech as
    JSON (audio plus timepoints) keyed by the story text hash. Story ideas
    seen during a run are kept in a session file so a later run can reuse
    them. A JSON index tracks all cached items.
    """

    SESSION_PREFIX = "session_"

    def __init__(self, cache_dir: Path, session_keep: int = 3):
        """
        Initialize the cache manager.

        Args:
            cache_dir: Base cache directory
            session_keep: Number of session files kept when loading the last session
        """
        self.cache_dir = cache_dir
        self.images_dir = cache_dir / "images"
        self.speech_dir = cache_dir / "tts"
        self.session_keep = session_keep
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.speech_dir.mkdir(parents=True, exist_ok=True)
        self.cache_index_file = self.cache_dir / "cache_index.json"
        self.cache_index = self._load_cache_index()

        self.session_id = datetime.now().strftime("%Y%m%d%H%M%S%f")
        self.session_file = self.cache_dir / f"{self.SESSION_PREFIX}{self.session_id}.json"
        self.session_stories: List[Dict[str, str]] = []

    def _load_cache_index(self) -> dict:
        """Load the cache index from disk."""
        if self.cache_index_file.exists():
            try:
                with open(self.cache_index_file, "r") as f:
                    return json.load(f)
            except json.JSONDecodeError:
                return {}
        return {}

    def _save_cache_index(self) -> None:
        """Save the cache index to disk."""
        with open(self.cache_index_file, "w") as f:
            json.dump(self.cache_index, f, indent=2)

    # --- Image caching ---

    def get_image_cache_key(self, prompt: str) -> str:
        return f"image_{compute_text_hash(prompt)}"

    def get_cached_image(self, prompt: str) -> Optional[str]:
        """
        Retrieve a cached image payload if available.

        Args:
            prompt: The prompt the image was generated from

        Returns:
            Base64 image data if cached, None otherwise
        """
        cache_file = self.images_dir / f"{compute_text_hash(prompt)}.txt"
        if not cache_file.exists():
            return None
        try:
            data = cache_file.read_text(encoding="utf-8")
        except OSError as e:
            print(f"[cache] could not read cached image: {e}")
            return None
        print(f"[cache] image hit for prompt: \"{prompt[:50]}\"")
        return data

    def save_image(self, prompt: str, base64_data: str) -> None:
        """Save a base64 image payload to the cache."""
        text_hash = compute_text_hash(prompt)
        cache_file = self.images_dir / f"{text_hash}.txt"
        try:
            cache_file.write_text(base64_data, encoding="utf-8")
        except OSError as e:
            # The image is still usable even when the cache write fails.
            print(f"[cache] could not save image: {e}")
            return

        self.cache_index[self.get_image_cache_key(prompt)] = {
            "type": "image",
            "path": str(cache_file),
            "text_preview": prompt[:100],
            "text_hash": text_hash,
            "created": datetime.now().isoformat(),
        }
        self._save_cache_index()

    # --- Speech caching ---

    def get_speech_cache_key(self, text: str) -> str:
        return f"speech_{compute_text_hash(text)}"

    def get_cached_speech(self, text: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve cached speech if available.

        Returns:
            Dict with ``audioContent`` and ``timepoints`` if cached, None otherwise
        """
        cache_file = self.speech_dir / f"{compute_text_hash(text)}.json"
        if not cache_file.exists():
            return None
        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"[cache] ignoring unreadable speech cache: {e}")
            return None
        print(f"[cache] speech hit for: \"{text[:30]}\"")
        return {
            "audioContent": data.get("audio", ""),
            "timepoints": data.get("timepoints") or [],
        }

    def save_speech(self, text: str, audio_content: str, timepoints: List[Any]) -> None:
        """Save synthesized speech (audio plus timepoints) to the cache."""
        text_hash = compute_text_hash(text)
        cache_file = self.speech_dir / f"{text_hash}.json"
        with open(cache_file, "w", encoding="utf-8") as f:
            json.dump({"audio": audio_content, "timepoints": timepoints}, f)

        self.cache_index[self.get_speech_cache_key(text)] = {
            "type": "speech",
            "path": str(cache_file),
            "text_preview": text[:100],
            "text_hash": text_hash,
            "timepoint_count": len(timepoints),
            "created": datetime.now().isoformat(),
        }
        self._save_cache_index()

    # --- Session story ideas ---

    def _session_files(self) -> List[Path]:
        files = [
            p for p in self.cache_dir.glob(f"{self.SESSION_PREFIX}*.json") if p.is_file()
        ]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)

    def load_last_session(self) -> List[Dict[str, str]]:
        """
        Load story ideas from the most recent session file.

        Older session files beyond ``session_keep`` are deleted.

        Returns:
            The loaded story ideas (also kept in ``session_stories``)
        """
        files = self._session_files()
        if not files:
            return self.session_stories

        try:
            with open(files[0], "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"[cache] could not load last session {files[0].name}: {e}")
            return self.session_stories

        self.session_stories = [
            s for s in data.get("stories", []) if isinstance(s, dict) and s.get("prompt")
        ]
        print(f"[cache] loaded {len(self.session_stories)} stories from last session")

        for old in files[self.session_keep:]:
            old.unlink()
            print(f"[cache] deleted old session: {old.name}")
        return self.session_stories

    def add_session_stories(self, stories: List[Dict[str, str]]) -> int:
        """
        Merge story ideas into the session, skipping prompts already present.

        Returns:
            Number of ideas added
        """
        known = {s["prompt"] for s in self.session_stories}
        added = 0
        for story in stories:
            prompt = story.get("prompt")
            if not prompt or prompt in known:
                continue
            self.session_stories.append({"prompt": prompt, "story": story.get("story", "")})
            known.add(prompt)
            added += 1

        session_data = {
            "sessionId": self.session_id,
            "timestamp": datetime.now().isoformat(),
            "stories": self.session_stories,
        }
        with open(self.session_file, "w", encoding="utf-8") as f:
            json.dump(session_data, f, indent=2, ensure_ascii=False)
        print(f"[cache] session saved with {len(self.session_stories)} total stories")
        return added

    def sample_session_stories(self, count: int) -> List[Dict[str, str]]:
        """Return up to ``count`` random story ideas from the session."""
        if not self.session_stories:
            return []
        return random.sample(self.session_stories, min(count, len(self.session_stories)))

    def clear_sessions(self) -> None:
        """Forget the in-memory session ideas so the next request regenerates."""
        self.session_stories = []
        print("[cache] story session cleared")

    # --- Cache management ---

    def clear_images(self) -> int:
        """Delete every cached image. Returns the number of files removed."""
        removed = 0
        for item in self.images_dir.iterdir():
            if item.is_file():
                item.unlink()
                removed += 1
        self.cache_index = {
            k: v for k, v in self.cache_index.items() if v.get("type") != "image"
        }
        self._save_cache_index()
        print(f"[cache] cleared {removed} cached images")
        return removed

    def clear(self) -> None:
        """Clear all cached data."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.speech_dir.mkdir(parents=True, exist_ok=True)
        self.cache_index = {}
        self.session_stories = []
        self._save_cache_index()
        print("Cache cleared.")

    def get_stats(self) -> dict:
        """Get cache statistics."""
        images = sum(1 for v in self.cache_index.values() if v.get("type") == "image")
        speech = sum(1 for v in self.cache_index.values() if v.get("type") == "speech")

        total_size = 0
        for directory in (self.cache_dir, self.images_dir, self.speech_dir):
            for item in directory.iterdir():
                if item.is_file():
                    total_size += item.stat().st_size

        return {
            "images": images,
            "speech": speech,
            "sessions": len(self._session_files()),
            "session_stories": len(self.session_stories),
            "session_id": self.session_id,
            "total_items": len(self.cache_index),
            "size_bytes": total_size,
            "size_mb": round(total_size / (1024 * 1024), 2),
        }

    def __repr__(self) -> str:
        stats = self.get_stats()
        return f"CacheManager(items={stats['total_items']}, size={stats['size_mb']}MB)"


class NullCacheManager:
    """
    A cache manager that doesn't cache anything.

    Used when caching is disabled via --no-cache flag.
    """

    @property
    def session_stories(self) -> List[Dict[str, str]]:
        return []

    def get_cached_image(self, prompt: str) -> None:
        return None

    def save_image(self, prompt: str, base64_data: str) -> None:
        pass

    def get_cached_speech(self, text: str) -> None:
        return None

    def save_speech(self, text: str, audio_content: str, timepoints: List[Any]) -> None:
        pass

    def load_last_session(self) -> List[Dict[str, str]]:
        return []

    def add_session_stories(self, stories: List[Dict[str, str]]) -> int:
        return 0

    def sample_session_stories(self, count: int) -> List[Dict[str, str]]:
        return []

    def clear_sessions(self) -> None:
        pass

    def clear_images(self) -> int:
        return 0

    def clear(self) -> None:
        pass

    def get_stats(self) -> dict:
        return {
            "images": 0,
            "speech": 0,
            "sessions": 0,
            "session_stories": 0,
            "session_id": None,
            "total_items": 0,
            "size_bytes": 0,
            "size_mb": 0,
        }

    def __repr__(self) -> str:
        return "NullCacheManager(disabled)"
