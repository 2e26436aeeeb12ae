"""Caption template for posted rows."""
from html import escape
from typing import Mapping

REQUIRED_FIELDS = ("title", "description", "view", "download", "image")
IMAGE_FIELD = "image"

CAPTION_TEMPLATE = """<b>{title}</b>

{description}

🔗 <a href="{view}">View</a>
⬇️ <a href="{download}">Download</a>"""


def missing_fields(mapping: Mapping[str, str | None]) -> list[str]:
    """Return the required target fields the mapping leaves unset."""
    return [f for f in REQUIRED_FIELDS if not (mapping.get(f) or "").strip()]


def _value(row: Mapping[str, object], column: str | None) -> str:
    if not column:
        return ""
    v = row.get(column)
    return "" if v is None else str(v).strip()


def image_reference(row: Mapping[str, object], mapping: Mapping[str, str]) -> str:
    """The row's mapped image URL or file id, or an empty string."""
    return _value(row, mapping.get(IMAGE_FIELD))


def render_caption(row: Mapping[str, object], mapping: Mapping[str, str]) -> str:
    """Render the HTML caption for one row.

    Text is HTML-escaped; empty titles and links fall back to placeholders.
    """
    return CAPTION_TEMPLATE.format(
        title=escape(_value(row, mapping.get("title")) or "No Title"),
        description=escape(_value(row, mapping.get("description"))),
        view=escape(_value(row, mapping.get("view")) or "#", quote=True),
        download=escape(_value(row, mapping.get("download")) or "#", quote=True),
    ).strip()
