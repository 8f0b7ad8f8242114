# app/services/email/templating.py
"""
Personalization and tracking instrumentation for campaign emails.

- Placeholders are single-brace ``{variable}`` tokens. Known variables are
  replaced; anything else is left exactly as written.
- With a message_id the rendered HTML carries an open pixel (plus a CSS
  background fallback for clients that block <img>), click-tracked links,
  a "view in browser" link and yes/no feedback links.
"""

import html
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from app.core.config import settings

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
LINK_PATTERN = re.compile(r"""href=(["'])(https?://[^"']+)\1""", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")
HTML_HINT_PATTERN = re.compile(r"<\s*(p|div|br|table|a|h[1-6]|ul|ol|span|img)\b", re.IGNORECASE)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates"
EMAIL_TEMPLATE_NAME = "campaign_email.html"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)

TRACKING_PREFIX = "/api/v1/track"


def extract_variables(*templates: str) -> List[str]:
    """Distinct placeholder names in order of first appearance."""
    seen: List[str] = []
    for template in templates:
        for name in PLACEHOLDER_PATTERN.findall(template or ""):
            if name not in seen:
                seen.append(name)
    return seen


def _format_number(value: Any) -> str:
    if value is None:
        return "0"
    number = float(value)
    return str(int(number)) if number.is_integer() else f"{number:.2f}"


def customer_variables(customer: Any) -> Dict[str, str]:
    """Substitution values available for one recipient."""
    orders = str(customer.order_count or 0)
    return {
        "name": customer.name or "",
        "email": customer.email or "",
        "total_spent": _format_number(customer.total_spent),
        "orders_count": orders,
        "order_count": orders,
        "city": customer.city or "",
        "phone": customer.phone or "",
    }


def personalize(template: str, variables: Dict[str, str]) -> str:
    """Replace {variable} tokens; unknown tokens stay literal."""
    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, template or "")


def tracking_urls(message_id: str, base_url: Optional[str] = None) -> Dict[str, str]:
    base = (base_url or settings.PUBLIC_BASE_URL).rstrip("/") + TRACKING_PREFIX
    return {
        "open": f"{base}/open/{message_id}",
        "click": f"{base}/click/{message_id}",
        "view": f"{base}/view/{message_id}",
        "feedback_yes": f"{base}/feedback/{message_id}/yes",
        "feedback_no": f"{base}/feedback/{message_id}/no",
    }


def rewrite_links(body_html: str, click_url: str) -> str:
    """Route every http(s) link through the click tracker."""
    def _rewrite(match: re.Match) -> str:
        quote_char, target = match.group(1), match.group(2)
        if TRACKING_PREFIX in target:
            return match.group(0)
        tracked = f"{click_url}?url={quote(html.unescape(target), safe='')}"
        return f"href={quote_char}{tracked}{quote_char}"

    return LINK_PATTERN.sub(_rewrite, body_html)


def body_to_html(body: str) -> str:
    """Plain-text bodies become paragraphs; HTML bodies pass through."""
    if HTML_HINT_PATTERN.search(body):
        return body
    paragraphs = [p for p in body.split("\n\n") if p.strip()]
    return "".join(
        "<p style='margin: 0 0 16px 0;'>" + html.escape(p).replace("\n", "<br>") + "</p>"
        for p in paragraphs
    )


def html_to_text(body_html: str) -> str:
    """Rough plain-text alternative of an HTML body."""
    text = re.sub(r"<br\s*/?>", "\n", body_html, flags=re.IGNORECASE)
    text = re.sub(r"</p\s*>", "\n\n", text, flags=re.IGNORECASE)
    text = html.unescape(TAG_PATTERN.sub("", text))
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def render_email(
    subject: str,
    body: str,
    message_id: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Render an already personalized body into the HTML layout.

    Returns:
        tuple: (html, text)
    """
    content = body_to_html(body)
    text = html_to_text(content)
    urls = tracking_urls(message_id, base_url) if message_id else None
    if urls:
        content = rewrite_links(content, urls["click"])

    template = _environment.get_template(EMAIL_TEMPLATE_NAME)
    rendered = template.render(
        subject=subject,
        content=Markup(content),
        tracking=urls,
    )
    return rendered, text
