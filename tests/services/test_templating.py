from types import SimpleNamespace

from app.services.email.templating import (
    customer_variables,
    extract_variables,
    personalize,
    render_email,
    rewrite_links,
)


def _customer(**overrides):
    fields = dict(
        name="Ravi", email="ravi@example.com", total_spent=1500.0, order_count=4,
        city="Mumbai", phone=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_personalize_substitutes_known_variables():
    variables = customer_variables(_customer())

    assert personalize("Hi {name}", variables) == "Hi Ravi"
    assert personalize("You spent {total_spent}", variables) == "You spent 1500"
    assert personalize("{orders_count} orders from {city}", variables) == "4 orders from Mumbai"


def test_personalize_leaves_unknown_tokens_literal():
    variables = customer_variables(_customer())

    assert personalize("Hi {name}, code {promo_code}", variables) == "Hi Ravi, code {promo_code}"


def test_fractional_spend_keeps_two_decimals():
    variables = customer_variables(_customer(total_spent=1234.5))

    assert variables["total_spent"] == "1234.50"


def test_extract_variables_in_first_seen_order():
    assert extract_variables("Hi {name}", "You spent {total_spent}, {name}!") == [
        "name",
        "total_spent",
    ]
    assert extract_variables("No placeholders") == []


def test_render_without_message_id_has_no_tracking():
    html, text = render_email("Hello", "Line one\n\nLine two")

    assert "/api/v1/track/" not in html
    assert "Line one" in html
    assert text == "Line one\n\nLine two"


def test_render_with_message_id_adds_every_tracking_technique():
    html, _ = render_email(
        "Hello",
        '<p>See <a href="https://shop.example.com/sale">the sale</a></p>',
        message_id="msg_1",
        base_url="https://crm.example.com",
    )

    # Pixel, CSS background, rewritten link, view online and feedback links
    assert '<img src="https://crm.example.com/api/v1/track/open/msg_1"' in html
    assert "background-image: url('https://crm.example.com/api/v1/track/open/msg_1?via=css')" in html
    assert "https://crm.example.com/api/v1/track/click/msg_1?url=https%3A%2F%2Fshop.example.com%2Fsale" in html
    assert "https://crm.example.com/api/v1/track/view/msg_1" in html
    assert "https://crm.example.com/api/v1/track/feedback/msg_1/yes" in html
    assert "https://crm.example.com/api/v1/track/feedback/msg_1/no" in html


def test_plain_text_body_is_escaped():
    html, _ = render_email("Hello", "1 < 2 & 3")

    assert "1 &lt; 2 &amp; 3" in html


def test_tracked_links_are_not_rewritten_twice():
    click = "https://crm.example.com/api/v1/track/click/msg_1"
    once = rewrite_links('<a href="https://shop.example.com">x</a>', click)

    assert rewrite_links(once, click) == once
