"""Utilities for turning notification content into sanitized markdown, HTML and plaintext."""
import re
from typing import Dict, List, Optional

import bleach
from markdown_it import MarkdownIt


# Single parser reused for performance; HTML disabled for safety
_md = MarkdownIt("commonmark", {'linkify': True, 'typographer': True, 'html': False}).enable(["linkify", "table", "strikethrough"])

EMAIL_ALLOWED_TAGS = [
    "p",
    "ul",
    "ol",
    "li",
    "strong",
    "em",
    "h1",
    "h2",
    "h3",
    "h4",
    "table",
    "thead",
    "tbody",
    "tr",
    "th",
    "td",
    "hr",
    "a",
    "br",
    "code",
]

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "th": ["colspan", "rowspan", "align"],
    "td": ["colspan", "rowspan", "align"],
}

_MARKDOWN_SPECIALS = re.compile(r"([\\`*_{}\[\]()#+!|>~])")


def _normalize_whitespace(text: str) -> str:
    cleaned = re.sub(r"[\r\t]+", " ", text or "")
    cleaned = re.sub(r" +", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def escape_markdown(text: object) -> str:
    """Neutralise markdown syntax in user-supplied text (titles, addresses)."""
    return _MARKDOWN_SPECIALS.sub(r"\\\1", _normalize_whitespace(str(text or "")))


def markdown_to_html(md_text: str) -> str:
    rendered = _md.render(_normalize_whitespace(md_text))
    return bleach.clean(rendered, tags=EMAIL_ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def markdown_to_email_html(md_text: str) -> str:
    safe_html = markdown_to_html(md_text)
    return (
        "<div style=\"font-family: 'Segoe UI', Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #1a2332;\">"
        f"{safe_html}"
        "</div>"
    )


def markdown_to_plaintext(md_text: str) -> str:
    rendered = markdown_to_html(md_text)
    text_only = bleach.clean(rendered, tags=[], attributes={}, strip=True)
    text_only = re.sub(r"\s+", " ", text_only).strip()
    return text_only


def format_sections(sections: List[Dict[str, object]]) -> str:
    """Build markdown from an ordered list of sections."""
    parts: List[str] = []
    for section in sections:
        title = _normalize_whitespace(str(section.get("title", "") or ""))
        if title:
            parts.append(f"## {title}")
        bullets = section.get("bullets") or []
        body = section.get("body") or ""
        if body:
            parts.append(_normalize_whitespace(str(body)))
        if isinstance(bullets, list):
            for bullet in bullets:
                if bullet is None:
                    continue
                bullet_text = _normalize_whitespace(str(bullet))
                if bullet_text:
                    parts.append(f"- {bullet_text}")
        parts.append("")
    return "\n".join([p for p in parts if p.strip()])


def format_complaint_confirmation_markdown(complaint: Dict[str, object]) -> str:
    return format_sections(
        [
            {
                "title": "Your Report Has Been Filed",
                "body": "Thank you for reporting a civic issue. Your complaint has been registered and will be reviewed shortly.",
                "bullets": [
                    f"Report ID: `{complaint.get('id', '')}`",
                    f"Title: {escape_markdown(complaint.get('title') or 'Untitled')}",
                    "Status: Submitted",
                    f"Location: {escape_markdown(complaint.get('address') or 'Not specified')}",
                ],
            },
            {
                "body": "You will receive updates as your complaint progresses through the resolution pipeline.",
            },
        ]
    )


def format_admin_alert_markdown(complaint: Dict[str, object]) -> str:
    description = str(complaint.get("description") or "No description")[:120]
    return format_sections(
        [
            {
                "title": "New Complaint Received",
                "body": "A new civic issue has been reported and requires your attention.",
                "bullets": [
                    f"Report ID: `{complaint.get('id', '')}`",
                    f"Title: {escape_markdown(complaint.get('title') or 'Untitled')}",
                    f"Category: {escape_markdown(complaint.get('category') or 'General')}",
                    f"Location: {escape_markdown(complaint.get('address') or 'Not specified')}",
                    f"Description: {escape_markdown(description)}",
                ],
            },
            {"body": "Log in to the admin dashboard to review and assign this ticket."},
        ]
    )


def format_status_update_markdown(complaint: Dict[str, object], new_status: str, *, points_awarded: Optional[int] = None) -> str:
    sections: List[Dict[str, object]] = [
        {
            "title": "Status Update",
            "body": "Your complaint has been updated. Here is the latest:",
            "bullets": [
                f"Report: {escape_markdown(complaint.get('title') or 'Untitled')}",
                f"New status: **{escape_markdown(new_status)}**",
            ],
        }
    ]
    if points_awarded:
        sections.append(
            {
                "body": f"**Great news!** Your issue has been resolved. You earned **+{points_awarded} points**!",
            }
        )
    sections.append({"body": "Thank you for helping make your community better."})
    return format_sections(sections)


def format_otp_markdown(user_name: str, code: str, ttl_minutes: int) -> str:
    sections = [
        {
            "title": "Verify Your Account",
            "body": f"Hello {escape_markdown(user_name)}, use the code below to verify your email address.",
            "bullets": [f"Verification code: **{code}**", f"This code expires in {ttl_minutes} minutes."],
        },
        {
            "title": "Security Reminder",
            "bullets": ["If you did not request this, ignore this email."],
        },
    ]
    return format_sections(sections)


def format_welcome_markdown(user_name: str) -> str:
    return format_sections(
        [
            {
                "title": f"Welcome, {escape_markdown(user_name)}!",
                "body": "Your account is verified. You can now report civic issues, upvote reports from your neighbours and climb the leaderboard.",
                "bullets": [
                    "+10 points for every report you file",
                    "+5 points for every upvote you cast",
                    "+50 points when one of your reports is resolved",
                ],
            }
        ]
    )
