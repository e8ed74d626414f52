"""Template utilities for campaign emails: placeholder substitution and HTML wrapping"""
import html
import json
import re
from typing import Any, Optional

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def replace_template_placeholders(text: str, contact, email: str) -> str:
    """Replace {{ email }}, {{ firstName }}, {{ lastName }} and {{ properties.<key> }} placeholders

    Unknown contacts render names as empty strings. Whitespace inside the braces is optional.
    """
    if not text:
        return text

    result = re.sub(r"{{\s*email\s*}}", lambda _: email, text)
    result = re.sub(r"{{\s*firstName\s*}}", lambda _: (contact.first_name if contact else None) or "", result)
    result = re.sub(r"{{\s*lastName\s*}}", lambda _: (contact.last_name if contact else None) or "", result)

    properties = getattr(contact, "properties", None) if contact else None
    if isinstance(properties, dict):
        for key, value in properties.items():
            pattern = r"{{\s*properties\." + re.escape(str(key)) + r"\s*}}"
            rendered = "" if value is None else str(value)
            result = re.sub(pattern, lambda _: rendered, result)

    return result


def _render_node(node: Any) -> str:
    """Render one editor (ProseMirror-style) JSON node as HTML"""
    if not isinstance(node, dict):
        return ""
    node_type = node.get("type")
    children = "".join(_render_node(child) for child in node.get("content", []) or [])

    if node_type == "text":
        text = html.escape(node.get("text", ""))
        for mark in node.get("marks", []) or []:
            mark_type = mark.get("type")
            if mark_type == "bold":
                text = f"<strong>{text}</strong>"
            elif mark_type == "italic":
                text = f"<em>{text}</em>"
            elif mark_type == "link":
                href = html.escape((mark.get("attrs") or {}).get("href", ""), quote=True)
                text = f'<a href="{href}">{text}</a>'
        return text
    if node_type == "paragraph":
        return f"<p>{children}</p>"
    if node_type == "heading":
        level = min(max(int((node.get("attrs") or {}).get("level", 2)), 1), 6)
        return f"<h{level}>{children}</h{level}>"
    if node_type == "hardBreak":
        return "<br/>"
    if node_type == "bulletList":
        return f"<ul>{children}</ul>"
    if node_type == "orderedList":
        return f"<ol>{children}</ol>"
    if node_type == "listItem":
        return f"<li>{children}</li>"
    return children


def content_to_html(content: Any) -> str:
    """Campaign/template content (HTML string or editor JSON document) as an HTML fragment"""
    if content is None:
        return ""
    if isinstance(content, str):
        stripped = content.strip()
        if stripped.startswith("{"):
            try:
                return _render_node(json.loads(stripped))
            except ValueError:
                return content
        return content
    if isinstance(content, dict):
        return _render_node(content)
    return html.escape(str(content))


def render_campaign_html(content_html: str, subject: str, unsubscribe_url: Optional[str] = None) -> str:
    """Wrap a campaign body in the standard email layout"""
    footer = ""
    if unsubscribe_url:
        footer = (
            '<p style="color: #999; font-size: 12px; margin-top: 32px;">'
            f'<a href="{html.escape(unsubscribe_url, quote=True)}" style="color: #999;">Se désinscrire</a>'
            '</p>'
        )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"/>"
        f"<title>{html.escape(subject or '')}</title></head>"
        '<body style="font-family: Arial, sans-serif; color: #222;">'
        f'<div style="max-width: 600px; margin: 0 auto;">{content_html}{footer}</div>'
        "</body></html>"
    )


def html_to_text(markup: str) -> str:
    """Plain-text alternative of an HTML email"""
    text = re.sub(r"<head>.*?</head>", "", markup or "", flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<br\s*/?>|</p>|</h[1-6]>|</li>", "\n", text, flags=re.IGNORECASE)
    text = html.unescape(_TAG_RE.sub("", text))
    return _BLANK_LINES_RE.sub("\n\n", text).strip()
