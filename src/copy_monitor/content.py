"""
Content classification for copied media.

Maps a file or folder path to a content category by walking an ordered
keyword table top-down. The first category with a keyword contained in the
path wins, so table order is the tie-break when a path matches several
categories. Paths that match nothing fall back to an episode-marker test
(series) and finally to plain movies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from . import constants
from .formatting import bytes_to_gb


@dataclass(frozen=True)
class ContentCategory:
    """A category label, its keywords and the pricing kind it bills as."""
    label: str
    keywords: Tuple[str, ...]
    kind: str = constants.CONTENT_MOVIES

    def matches(self, lowered_path: str) -> bool:
        return any(keyword in lowered_path for keyword in self.keywords)


SERIES = ContentCategory("Series", (), constants.CONTENT_SERIES)
MOVIES = ContentCategory("Movies", (), constants.CONTENT_MOVIES)

# Order matters: the first match wins.
DEFAULT_CATEGORIES: Tuple[ContentCategory, ...] = (
    ContentCategory("Foreign Movies", ("foreign", "english", "hollywood", "اجنبي", "أجنبي")),
    ContentCategory("Arabic Movies", ("arabic", "arab", "عربي", "مصري", "egyptian")),
    ContentCategory("Asian Movies", ("asian", "chinese", "آسيوي", "صيني")),
    ContentCategory("Turkish Movies", ("turkish", "تركي", "turk")),
    ContentCategory("Animation", ("animation", "animated", "pixar", "disney", "انميشن")),
    ContentCategory("Anime", ("anime", "انمي", "أنمي")),
    ContentCategory("Foreign Series", ("series", "season", "مسلسل اجنبي"), constants.CONTENT_SERIES),
    ContentCategory("Turkish Series", ("turkish series", "مسلسل تركي", "تركي"), constants.CONTENT_SERIES),
    ContentCategory("Arabic Series", ("arabic series", "مسلسل عربي"), constants.CONTENT_SERIES),
    ContentCategory("Korean Series", ("korean", "kdrama", "كوري", "كورية"), constants.CONTENT_SERIES),
    ContentCategory("Japanese Anime", ("japanese anime", "انمي ياباني"), constants.CONTENT_SERIES),
)

# S01E02, "ep 12", "Episode.3", "E05" and the Arabic word for episode.
# Markers glued to a preceding letter ("movie2020") or followed by a fourth
# digit (years) do not count.
EPISODE_PATTERN = re.compile(
    r"s\d{1,2}\s*e\d{1,3}"
    r"|(?<![a-z])(?:episode|ep|e)[\s._-]*\d{1,3}(?!\d)"
    r"|حلقة",
    re.IGNORECASE,
)


class ContentClassifier:
    def __init__(self, categories: Sequence[ContentCategory] = DEFAULT_CATEGORIES):
        self.categories: Tuple[ContentCategory, ...] = tuple(categories)
        self._by_label = {c.label: c for c in self.categories}
        self._by_label.setdefault(SERIES.label, SERIES)
        self._by_label.setdefault(MOVIES.label, MOVIES)

    def category_for(self, path: Union[str, PurePath]) -> ContentCategory:
        lowered = str(path).lower()
        for category in self.categories:
            if category.matches(lowered):
                return category
        if EPISODE_PATTERN.search(lowered):
            return SERIES
        return MOVIES

    def classify(self, path: Union[str, PurePath]) -> str:
        return self.category_for(path).label

    def pricing_kind(self, label: str) -> str:
        """Pricing content type (movies/series) for a category label."""
        category = self._by_label.get(label)
        return category.kind if category else constants.CONTENT_MOVIES

    def summarize(self, operations: Iterable[Any]) -> "ContentSummary":
        """
        Fold finished copy operations into the inputs of a price quote.

        Accepts operation records (dicts) or objects with ``content_type``
        and ``current_size`` attributes. Operations without a content type are
        classified from their path.
        """
        movies = 0
        series = 0
        total_bytes = 0
        for op in operations:
            record = op if isinstance(op, Mapping) else vars(op)
            label = record.get("content_type") or self.classify(record.get("path", ""))
            if self.pricing_kind(label) == constants.CONTENT_SERIES:
                series += 1
            else:
                movies += 1
            total_bytes += record.get("current_size") or 0
        if movies and series:
            content_type = constants.CONTENT_MIXED
        elif series:
            content_type = constants.CONTENT_SERIES
        else:
            content_type = constants.CONTENT_MOVIES
        return ContentSummary(content_type=content_type, item_count=movies + series, size_gb=bytes_to_gb(total_bytes))


@dataclass(frozen=True)
class ContentSummary:
    content_type: str
    item_count: int
    size_gb: float


_default_classifier = ContentClassifier()


def classify_content(path: Union[str, PurePath]) -> str:
    return _default_classifier.classify(path)


def category_labels(classifier: ContentClassifier = _default_classifier) -> List[str]:
    return [c.label for c in classifier.categories] + [SERIES.label, MOVIES.label]
