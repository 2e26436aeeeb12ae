"""Column inference for uploaded files."""
from channel_poster_core.delivery.template import REQUIRED_FIELDS

FIELD_HINTS = {
    "title": ("title", "name", "heading", "subject"),
    "description": ("description", "desc", "summary", "body", "text"),
    "view": ("view", "view_url", "preview", "link", "url", "page"),
    "download": ("download", "download_url", "file", "dl"),
    "image": ("image", "image_url", "img", "photo", "thumbnail", "cover", "picture"),
}


def _score(column: str, hints: tuple[str, ...]) -> int:
    name = column.lower().strip().replace(" ", "_").replace("-", "_")
    if name in hints:
        return 100 - hints.index(name)
    for i, hint in enumerate(hints):
        if hint in name:
            return 50 - i
    return 0


def suggest_mapping(columns: list[str]) -> dict[str, str | None]:
    """Suggest a source column for each required target field.

    A column is used for at most one field; fields with no plausible
    column map to ``None``.
    """
    taken: set[str] = set()
    mapping: dict[str, str | None] = {}
    for field in REQUIRED_FIELDS:
        hints = FIELD_HINTS[field]
        best, best_score = None, 0
        for col in columns:
            if col in taken:
                continue
            score = _score(col, hints)
            if score > best_score:
                best, best_score = col, score
        mapping[field] = best
        if best is not None:
            taken.add(best)
    return mapping
