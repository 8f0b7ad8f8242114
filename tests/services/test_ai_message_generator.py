from unittest.mock import MagicMock

import pytest

from app.core.config import settings
from app.services.ai_message_generator import (
    AnthropicTextGenerator,
    FallbackTextGenerator,
    TemplateTextGenerator,
    analyze_rules,
    parse_generated_content,
)
from app.services.email.templating import extract_variables

def _rules(*leaves):
    return {"combinator": "and", "rules": list(leaves)}

def _anthropic_client(text):
    client = MagicMock()
    client.messages.create.return_value.content = [MagicMock(text=text)]
    return client

def test_analyze_rules_profiles():
    assert analyze_rules(_rules({"field": "total_spent", "operator": ">", "value": 5000})).audience == (
        "high-value customers"
    )
    assert analyze_rules(_rules({"field": "orders_count", "operator": ">=", "value": 5})).audience == (
        "loyal customers"
    )
    inactive = analyze_rules(_rules({"field": "last_purchase", "operator": "<", "value": 90}))
    assert inactive.audience == "inactive customers"
    assert inactive.urgency == "high"
    local = analyze_rules(_rules({"field": "city", "operator": "==", "value": "Pune"}))
    assert local.audience == "local customers"
    assert local.city == "Pune"

def test_analyze_rules_tolerates_garbage():
    assert analyze_rules({"rules": "nope"}).audience == "general customers"

def test_parse_generated_content():
    subject, body = parse_generated_content("**Subject: Hi {name}**\n\nThanks for shopping, {name}.")

    assert subject == "Hi {name}"
    assert body == "Thanks for shopping, {name}."

def test_parse_generated_content_without_subject():
    with pytest.raises(ValueError):
        parse_generated_content("Just a body without a subject line")

@pytest.mark.parametrize(
    "leaf",
    [
        {"field": "total_spent", "operator": ">", "value": 5000},
        {"field": "order_count", "operator": ">", "value": 10},
        {"field": "last_purchase", "operator": "<", "value": 60},
        {"field": "city", "operator": "==", "value": "Pune"},
        {"field": "age", "operator": ">", "value": 30},
    ],
)
def test_template_output_is_well_formed(leaf):
    content = TemplateTextGenerator().generate_campaign_content(_rules(leaf))

    subject, body = parse_generated_content(content)
    assert extract_variables(subject, body)

def test_anthropic_generator_unavailable_without_key(monkeypatch):
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")
    generator = AnthropicTextGenerator()

    assert generator.is_available() is False
    with pytest.raises(ValueError):
        generator.generate_campaign_content(_rules({"field": "city", "operator": "exists"}))

def test_explicit_empty_key_ignores_configured_key(monkeypatch):
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "sk-from-env")

    assert AnthropicTextGenerator(api_key="").is_available() is False

def test_fallback_uses_model_output_when_valid():
    client = _anthropic_client("Subject: {name}, we saved you a seat\n\nHi {name}, come back soon.")
    generator = FallbackTextGenerator(AnthropicTextGenerator(api_key="sk-test", client=client))

    content = generator.generate_campaign_content(_rules({"field": "city", "operator": "exists"}), "Autumn")

    assert content.startswith("Subject: {name}, we saved you a seat")
    client.messages.create.assert_called_once()

@pytest.mark.parametrize(
    "model_output",
    [
        "Here is an email without the expected shape",
        "Subject: Big sale\n\nEverything is half price this week.",
    ],
)
def test_fallback_replaces_unusable_model_output(model_output):
    client = _anthropic_client(model_output)
    generator = FallbackTextGenerator(AnthropicTextGenerator(api_key="sk-test", client=client))
    rules = _rules({"field": "total_spent", "operator": ">", "value": 5000})

    content = generator.generate_campaign_content(rules)

    assert content == TemplateTextGenerator().generate_campaign_content(rules)

def test_fallback_on_model_error():
    client = MagicMock()
    client.messages.create.side_effect = RuntimeError("overloaded")
    generator = FallbackTextGenerator(AnthropicTextGenerator(api_key="sk-test", client=client))

    subject, body = parse_generated_content(
        generator.generate_campaign_content(_rules({"field": "city", "operator": "exists"}))
    )
    assert subject and body
