"""Font cache, registration and lookup.

``FontRegistry`` owns the on-disk cache of downloaded font binaries (keyed by
the MD5 of the source URL) and the set of family names registered for this
registry's lifetime. ``FontResolver`` turns a CSS-like family/weight/size into
a Pillow font, preferring registered families, then system fonts, then
Pillow's bundled default.
"""
import hashlib
import io
import os
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

from PIL import ImageFont

from src.shared import logging_utils as log
from src.specs.common.errors import ConfigurationError, FontFetchError

PillowFont = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]
FontDownloader = Callable[[str], bytes]

DEFAULT_FONT_EXT = ".ttf"

_GENERIC_FAMILIES: Dict[str, Dict[str, List[str]]] = {
    "sans-serif": {
        "regular": ["DejaVuSans.ttf", "Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf", "Helvetica.ttc"],
        "bold": ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "LiberationSans-Bold.ttf", "Helvetica.ttc"],
    },
    "serif": {
        "regular": ["DejaVuSerif.ttf", "Times New Roman.ttf", "times.ttf", "LiberationSerif-Regular.ttf"],
        "bold": ["DejaVuSerif-Bold.ttf", "Times New Roman Bold.ttf", "timesbd.ttf", "LiberationSerif-Bold.ttf"],
    },
    "monospace": {
        "regular": ["DejaVuSansMono.ttf", "Courier New.ttf", "cour.ttf", "LiberationMono-Regular.ttf"],
        "bold": ["DejaVuSansMono-Bold.ttf", "Courier New Bold.ttf", "courbd.ttf", "LiberationMono-Bold.ttf"],
    },
}
_FAMILY_ALIASES = {"arial": "sans-serif", "helvetica": "sans-serif", "system-ui": "sans-serif"}


def font_cache_key(font_url: str) -> str:
    """Cache file name for ``font_url``: md5 of the URL plus its extension."""
    url_hash = hashlib.md5(font_url.encode("utf-8")).hexdigest()
    ext = os.path.splitext(urlparse(font_url).path)[1] or DEFAULT_FONT_EXT
    return f"{url_hash}{ext}"


def is_bold(weight: str) -> bool:
    weight = (weight or "").strip().lower()
    if weight in ("bold", "bolder"):
        return True
    try:
        return int(weight) >= 600
    except ValueError:
        return False


class FontRegistry:
    """Downloads fonts once, caches them on disk and registers them by family name.

    Each instance is independent; the function app keeps one per process.
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        downloader: FontDownloader,
        *,
        max_files: Optional[int] = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self._downloader = downloader
        self._max_files = max_files
        self._registered: Dict[str, Path] = {}

    def is_registered(self, family: str) -> bool:
        return family in self._registered

    def font_path(self, family: str) -> Optional[Path]:
        return self._registered.get(family)

    @property
    def families(self) -> List[str]:
        return sorted(self._registered)

    def ensure_registered(self, font_url: str, family: str) -> Path:
        """Make ``family`` available, downloading ``font_url`` if it isn't cached.

        Idempotent per family: once registered, later calls (with any URL) do
        no disk or network work, unless the cached file has since been removed.
        """
        existing = self._registered.get(family)
        if existing is not None and not existing.exists():
            # pruned by another worker sharing the cache directory
            log.warning(None, "font:registered_file_missing", family=family, path=str(existing))
            del self._registered[family]
            _load_truetype.cache_clear()
            existing = None
        if existing is not None:
            log.info(None, "font:already_registered", family=family)
            return existing

        parsed = urlparse(font_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FontFetchError(f"Invalid font URL: {font_url!r}", font_url=font_url)

        cache_file = self.cache_dir / font_cache_key(font_url)
        if cache_file.exists():
            data = cache_file.read_bytes()
            log.info(None, "font:cache_hit", family=family, path=str(cache_file), size=len(data))
            try:
                self._check_loadable(data, font_url)
            except FontFetchError:
                cache_file.unlink(missing_ok=True)
                raise
        else:
            data = self._download(font_url)
            self._check_loadable(data, font_url)
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                cache_file.write_bytes(data)
            except OSError as exc:
                raise ConfigurationError(
                    f"Font cache directory is not writable: {self.cache_dir}", details={"error": str(exc)}
                ) from exc
            log.info(None, "font:cached", family=family, path=str(cache_file), size=len(data))
            self._prune()

        self._registered[family] = cache_file
        log.info(None, "font:registered", family=family)
        return cache_file

    @staticmethod
    def _check_loadable(data: bytes, font_url: str) -> None:
        try:
            ImageFont.truetype(io.BytesIO(data), size=12)
        except OSError as exc:
            raise FontFetchError(f"Font file is not loadable: {exc}", font_url=font_url) from exc

    def _download(self, font_url: str) -> bytes:
        log.info(None, "font:download", url=font_url)
        try:
            data = self._downloader(font_url)
        except FontFetchError:
            raise
        except Exception as exc:
            raise FontFetchError(f"Font download failed: {exc}", font_url=font_url) from exc
        if not data:
            raise FontFetchError("Font file is empty", font_url=font_url)
        return data

    def _prune(self) -> None:
        if not self._max_files or not self.cache_dir.is_dir():
            return
        in_use = set(self._registered.values())
        entries = []
        try:
            for path in self.cache_dir.iterdir():
                try:
                    if path.is_file():
                        entries.append((path.stat().st_mtime, path))
                except OSError:
                    # removed concurrently
                    continue
        except OSError as exc:
            log.warning(None, "font:prune_failed", path=str(self.cache_dir), error=str(exc))
            return
        entries.sort(key=lambda entry: entry[0])
        excess = len(entries) - self._max_files
        for _, path in entries:
            if excess <= 0:
                break
            if path in in_use:
                continue
            try:
                path.unlink()
                excess -= 1
                log.info(None, "font:pruned", path=str(path))
            except OSError as exc:
                log.warning(None, "font:prune_failed", path=str(path), error=str(exc))


@lru_cache(maxsize=256)
def _load_truetype(source: str, size: int) -> Optional[ImageFont.FreeTypeFont]:
    # Misses are cached too; a miss walks the system font directories.
    try:
        return ImageFont.truetype(source, size=size)
    except OSError:
        return None


@lru_cache(maxsize=64)
def _load_default(size: int) -> PillowFont:
    return ImageFont.load_default(size=size)


def _split_families(font_family: str) -> List[str]:
    names = []
    for part in (font_family or "").split(","):
        name = part.strip().strip("'\"").strip()
        if name:
            names.append(name)
    return names


class FontResolver:
    """Resolve CSS-style font declarations to Pillow fonts."""

    def __init__(self, registry: Optional[FontRegistry] = None) -> None:
        self.registry = registry

    def candidates(self, font_family: str, font_weight: str = "normal") -> List[str]:
        bold = is_bold(font_weight)
        out: List[str] = []
        for name in _split_families(font_family):
            registered = self.registry.font_path(name) if self.registry else None
            if registered is not None:
                out.append(str(registered))
                continue
            if name.lower() in _GENERIC_FAMILIES:
                out.extend(_GENERIC_FAMILIES[name.lower()]["bold" if bold else "regular"])
                continue
            generic = _GENERIC_FAMILIES.get(_FAMILY_ALIASES.get(name.lower(), ""))
            if bold:
                out.extend([f"{name}-Bold.ttf", f"{name} Bold.ttf"])
            out.extend([name, f"{name}.ttf", f"{name}.otf"])
            if generic:
                out.extend(generic["bold" if bold else "regular"])
        generic = _GENERIC_FAMILIES["sans-serif"]
        out.extend(generic["bold" if bold else "regular"])
        return out

    def get_font(self, font_family: str, font_weight: str = "normal", size: float = 24) -> PillowFont:
        px = max(int(round(size)), 1)
        for candidate in self.candidates(font_family, font_weight):
            font = _load_truetype(candidate, px)
            if font is not None:
                return font
        return _load_default(px)
