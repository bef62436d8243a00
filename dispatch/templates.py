"""Cast stored connection templates into the shape delivery workers expect.

Stored embeds are flat (``authorName``, ``footerText``, ``imageUrl`` ...);
delivery requests carry nested objects with empty parts removed. Placeholder
substitution happens downstream.
"""

from __future__ import annotations

from typing import Any


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _color(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= 0xFFFFFF else None
    text = str(value).strip()
    try:
        if text.startswith("#"):
            parsed = int(text[1:], 16)
        else:
            parsed = int(text)
    except ValueError:
        return None
    return parsed if 0 <= parsed <= 0xFFFFFF else None


def _compact(obj: dict[str, Any]) -> dict[str, Any] | None:
    kept = {k: v for k, v in obj.items() if v is not None}
    return kept or None


def render_content(content: str | None) -> str | None:
    return _text(content)


def _render_fields(fields: Any) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for field in fields or []:
        if not isinstance(field, dict):
            continue
        name = _text(field.get("name"))
        value = _text(field.get("value"))
        if name is None or value is None:
            continue
        out.append({"name": name, "value": value, "inline": bool(field.get("inline"))})
    return out


def render_embed(embed: dict[str, Any]) -> dict[str, Any] | None:
    timestamp = _text(embed.get("timestamp"))
    rendered = {
        "title": _text(embed.get("title")),
        "description": _text(embed.get("description")),
        "url": _text(embed.get("url")),
        "color": _color(embed.get("color")),
        "timestamp": timestamp if timestamp in ("now", "article") else None,
        "author": _compact(
            {
                "name": _text(embed.get("authorName")),
                "url": _text(embed.get("authorUrl")),
                "iconUrl": _text(embed.get("authorIconUrl")),
            }
        )
        if _text(embed.get("authorName"))
        else None,
        "footer": _compact(
            {
                "text": _text(embed.get("footerText")),
                "iconUrl": _text(embed.get("footerIconUrl")),
            }
        )
        if _text(embed.get("footerText"))
        else None,
        "thumbnail": _compact({"url": _text(embed.get("thumbnailUrl"))}),
        "image": _compact({"url": _text(embed.get("imageUrl"))}),
        "fields": _render_fields(embed.get("fields")),
    }
    if not rendered["fields"]:
        rendered["fields"] = None
    return _compact(rendered)


def render_embeds(embeds: list[dict[str, Any]]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for embed in embeds or []:
        if not isinstance(embed, dict):
            continue
        rendered = render_embed(embed)
        if rendered is not None:
            out.append(rendered)
    return out
