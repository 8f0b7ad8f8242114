# app/services/ai_message_generator.py
"""
Campaign copy generation for segments.

Features:
- Audience analysis from the segment's rule tree (high-value, loyal,
  inactive, local or general customers)
- Claude-generated subject and body when ANTHROPIC_API_KEY is configured
- Deterministic template copy when it is not, or when the model fails

Generated text always has the shape "Subject: ...\\n\\n<body>" and uses
{variable} personalization tokens the dispatch job understands.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from anthropic import Anthropic

from app.core.config import settings
from app.services.email.templating import extract_variables
from app.services.segment_rules import iter_leaf_rules

logger = logging.getLogger(__name__)

CLAUDE_MODEL = "claude-sonnet-4-5-20250929"
SUBJECT_PREFIX = "Subject:"


@dataclass
class AudienceProfile:
    """What the rule tree says about the people being emailed."""
    audience: str = "general customers"
    offer: str = "discount"
    urgency: str = "moderate"
    city: Optional[str] = None


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def analyze_rules(segment_rules: Dict[str, Any]) -> AudienceProfile:
    """Classify the audience from the leaves of a rule tree. Later leaves win."""
    profile = AudienceProfile()
    try:
        leaves = list(iter_leaf_rules(segment_rules))
    except Exception as e:
        logger.warning(f"Could not analyze segment rules: {e}")
        return profile

    for rule in leaves:
        field = rule.get("field")
        operator = rule.get("operator")
        value = _as_number(rule.get("value"))

        if field == "total_spent" and operator in (">", ">=") and value is not None and value > 500:
            profile.audience, profile.offer = "high-value customers", "premium benefits"
        elif field in ("order_count", "orders_count") and operator in (">", ">=") \
                and value is not None and value > 3:
            profile.audience, profile.offer = "loyal customers", "loyalty rewards"
        elif field in ("last_purchase", "last_login") and operator in ("<", "<="):
            profile.audience, profile.offer, profile.urgency = "inactive customers", "win-back offer", "high"
        elif field == "city" and operator in ("==", "contains") and rule.get("value"):
            profile.city = str(rule["value"])
            if profile.audience == "general customers":
                profile.audience, profile.offer = "local customers", "local exclusive"
    return profile


def parse_generated_content(content: str) -> Tuple[str, str]:
    """
    Split "Subject: ...\\n\\n<body>" text into (subject, body).

    Raises:
        ValueError: If there is no subject line
    """
    lines = content.strip().splitlines()
    for index, line in enumerate(lines):
        stripped = line.strip().strip("*").strip()
        if stripped.lower().startswith(SUBJECT_PREFIX.lower()):
            subject = stripped[len(SUBJECT_PREFIX):].strip()
            body = "\n".join(lines[index + 1:]).strip()
            if subject and body:
                return subject, body
            break
    raise ValueError("Generated content has no 'Subject:' line followed by a body")


class TextGenerator(ABC):
    """Source of campaign copy."""

    @abstractmethod
    def generate_campaign_content(
        self,
        segment_rules: Dict[str, Any],
        campaign_name: Optional[str] = None,
        segment_description: Optional[str] = None,
    ) -> str:
        """Return "Subject: ...\\n\\n<body>" text."""
        pass


class TemplateTextGenerator(TextGenerator):
    """Deterministic copy picked by audience type."""

    TEMPLATES = {
        "high-value customers": (
            "{name}, an exclusive thank-you for our best customers",
            "Hi {name},\n\n"
            "You have spent {total_spent} with us, which puts you among our most valued customers. "
            "As a thank-you we have unlocked premium benefits on your account: early access to new "
            "arrivals and priority support.\n\n"
            "Sign in to see what is waiting for you.\n\n"
            "With gratitude,\nThe Team",
        ),
        "loyal customers": (
            "{name}, your loyalty rewards are here",
            "Hi {name},\n\n"
            "{orders_count} orders and counting. Thank you for coming back again and again!\n\n"
            "We have added loyalty rewards to your account that you can use on your next order.\n\n"
            "See you soon,\nThe Team",
        ),
        "inactive customers": (
            "We miss you, {name}! Here is something to welcome you back",
            "Hi {name},\n\n"
            "It has been a while since your last visit and a lot has changed. To welcome you back we "
            "have reserved a special win-back offer, valid for the next 7 days only.\n\n"
            "Come back and take a look before it expires.\n\n"
            "Warm regards,\nThe Team",
        ),
        "local customers": (
            "Something special for our customers in {city}",
            "Hi {name},\n\n"
            "We love our community in {city}, so we put together a local exclusive just for you.\n\n"
            "Drop by or order online to claim it this week.\n\n"
            "Cheers,\nThe Team",
        ),
        "general customers": (
            "{name}, a special offer just for you",
            "Hi {name},\n\n"
            "Thank you for being part of our community. We have a special discount waiting for you on "
            "your next purchase.\n\n"
            "Do not miss out, this offer will not last long!\n\n"
            "Best,\nThe Team",
        ),
    }

    def generate_campaign_content(
        self,
        segment_rules: Dict[str, Any],
        campaign_name: Optional[str] = None,
        segment_description: Optional[str] = None,
    ) -> str:
        profile = analyze_rules(segment_rules)
        subject, body = self.TEMPLATES.get(profile.audience, self.TEMPLATES["general customers"])
        if campaign_name and profile.audience == "general customers":
            subject = f"{campaign_name}: {subject}"
        return f"{SUBJECT_PREFIX} {subject}\n\n{body}"


class AnthropicTextGenerator(TextGenerator):
    """Campaign copy written by Claude."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[Anthropic] = None):
        self.api_key = settings.ANTHROPIC_API_KEY if api_key is None else api_key
        if client is not None:
            self.client = client
        elif not self.api_key:
            logger.warning("ANTHROPIC_API_KEY not configured. AI features will be disabled.")
            self.client = None
        else:
            self.client = Anthropic(api_key=self.api_key)

    def is_available(self) -> bool:
        """Check if AI generation is available."""
        return self.client is not None

    def generate_campaign_content(
        self,
        segment_rules: Dict[str, Any],
        campaign_name: Optional[str] = None,
        segment_description: Optional[str] = None,
    ) -> str:
        if not self.is_available():
            raise ValueError("AI content generation is not available. Please configure ANTHROPIC_API_KEY.")

        prompt = self._build_prompt(analyze_rules(segment_rules), campaign_name, segment_description)
        response = self.client.messages.create(
            model=CLAUDE_MODEL,
            max_tokens=1000,
            temperature=0.7,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text

    def _build_prompt(
        self,
        profile: AudienceProfile,
        campaign_name: Optional[str],
        segment_description: Optional[str],
    ) -> str:
        """Build the prompt for Claude."""
        return f"""You are an expert email marketing copywriter. Write one email campaign for a retail business.

**Campaign Details:**
{f'- Campaign Name: "{campaign_name}"' if campaign_name else ""}
{f'- Target Segment: "{segment_description}"' if segment_description else ""}
- Audience Type: {profile.audience}
- Offer Type: {profile.offer}
- Urgency Level: {profile.urgency}

**Requirements:**
- An attention-grabbing subject line under 60 characters
- A short personal body (120-200 words) with one clear call-to-action
- Personalization variables in single curly brackets: {{name}}, {{total_spent}}, {{orders_count}}, {{city}}
- No other placeholders

**Output Format:**
Subject: [Your subject line]

[Your message body]"""


class FallbackTextGenerator(TextGenerator):
    """Tries the primary generator and falls back to templates on any failure."""

    def __init__(self, primary: TextGenerator, fallback: Optional[TextGenerator] = None):
        self.primary = primary
        self.fallback = fallback or TemplateTextGenerator()

    def generate_campaign_content(
        self,
        segment_rules: Dict[str, Any],
        campaign_name: Optional[str] = None,
        segment_description: Optional[str] = None,
    ) -> str:
        try:
            content = self.primary.generate_campaign_content(
                segment_rules, campaign_name, segment_description
            )
            subject, body = parse_generated_content(content)
            if not extract_variables(subject, body):
                raise ValueError("Generated content has no personalization variables")
            return content
        except Exception as e:
            logger.warning(f"AI content generation failed, using template copy: {e}")
            return self.fallback.generate_campaign_content(
                segment_rules, campaign_name, segment_description
            )


_generator: Optional[TextGenerator] = None


def get_text_generator() -> TextGenerator:
    """Claude with template fallback when a key is configured, else templates only."""
    global _generator
    if _generator is None:
        remote = AnthropicTextGenerator()
        _generator = FallbackTextGenerator(remote) if remote.is_available() else TemplateTextGenerator()
    return _generator
