"""Small HTML bodies for workflow emails and notifications."""

from __future__ import annotations

from html import escape

_WRAPPER = '<div style="font-family: Arial, Helvetica, sans-serif; font-size:16px; color:#111">{body}</div>'
_BUTTON = (
    '<p><a href="{link}" style="display:inline-block;padding:8px 12px;background-color:#0052cc;'
    'color:#fff;text-decoration:none;border-radius:6px;">{label}</a></p>'
)
_FALLBACK = (
    '<p style="font-size:13px;color:#666">If the button does not work, copy this URL into your browser:</p>'
    '<p style="word-break:break-all"><a href="{link}">{link}</a></p>'
)


def paragraph(text: str) -> str:
    return f"<p>{escape(text)}</p>"


def action_html(message: str, link: str, label: str) -> str:
    """Message paragraph, a button linking to `link`, and the raw URL as fallback."""
    safe_link = escape(link, quote=True)
    return _WRAPPER.format(
        body=paragraph(message)
        + _BUTTON.format(link=safe_link, label=escape(label))
        + _FALLBACK.format(link=safe_link)
    )


def join_url(base: str, *parts: str) -> str:
    return "/".join([base.rstrip("/"), *(p.strip("/") for p in parts)])
