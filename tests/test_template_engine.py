"""Tests for template rendering, validation and SMS sizing."""

import pytest

from notification_engine.domain.models import (
    BusinessContext,
    Channel,
    NotificationTemplate,
    TemplateVariable,
)
from notification_engine.rendering import TemplateEngine, TemplateRenderError
from notification_engine.rendering.engine import (
    DEFAULT_VARIABLE_LENGTH,
    SHORTENED_URL_LENGTH,
)


@pytest.fixture
def engine():
    return TemplateEngine()


def _sms_template(text, variables=()):
    return NotificationTemplate(
        id="sms_v1",
        type="appointment_reminder",
        channel=Channel.SMS,
        body_template_text=text,
        variables=list(variables),
    )


class TestRender:
    def test_renders_subject_html_and_text(self, engine, booking_email_template):
        data = {"customer_name": "Jane", "pet_name": "Biscuit", "appointment_date": "2025-11-20"}

        rendered = engine.render(booking_email_template, data)

        assert rendered.subject == "Booking confirmed for Biscuit"
        assert rendered.html == "<p>Hi Jane, Biscuit is booked on 2025-11-20.</p>"
        assert rendered.text == "Hi Jane, Biscuit is booked on 2025-11-20. Puppy Day"
        assert rendered.character_count == len(rendered.text)
        assert rendered.warnings == []

    def test_html_body_is_escaped_but_text_is_not(self, engine, booking_email_template):
        data = {"customer_name": "<b>Jane</b>", "pet_name": "Biscuit", "appointment_date": "x"}

        rendered = engine.render(booking_email_template, data)

        assert "&lt;b&gt;Jane&lt;/b&gt;" in rendered.html
        assert "<b>Jane</b>" in rendered.text

    def test_missing_variable_renders_empty(self, engine, booking_email_template):
        rendered = engine.render(booking_email_template, {"pet_name": "Biscuit"})

        assert rendered.text.startswith("Hi , Biscuit is booked on .")

    def test_nested_paths_read_mapping_keys(self, engine):
        text = engine.render_string("{{ order.items }} items for {{ pet.owner.name }}", {
            "order": {"items": 3},
            "pet": {"owner": {"name": "Sam"}},
        })

        assert text == "3 items for Sam"

    def test_missing_nested_path_renders_empty(self, engine):
        assert engine.render_string("[{{ pet.owner.name }}]", {"pet": {}}) == "[]"

    def test_business_context_cannot_be_overridden(self, engine):
        text = engine.render_string("{{ business.name }}", {"business": {"name": "Impostor"}})

        assert text == "Puppy Day"

    def test_custom_business_context(self):
        engine = TemplateEngine(BusinessContext(name="Doggo Spa", phone="(555) 000-1111"))

        assert engine.render_string("{{ business.name }} {{ business.phone }}", {}) == "Doggo Spa (555) 000-1111"

    def test_value_formatting(self, engine):
        text = engine.render_string(
            "{{ nothing }}|{{ yes }}|{{ no }}|{{ whole }}|{{ price }}",
            {"nothing": None, "yes": True, "no": False, "whole": 2.0, "price": 19.5},
        )

        assert text == "|true|false|2|19.5"

    def test_subject_is_single_line(self, engine):
        template = NotificationTemplate(
            id="t",
            type="t",
            channel=Channel.EMAIL,
            subject_template="  Hello\n{{ name }}  ",
            body_template_text="body",
        )

        assert engine.render(template, {"name": "Jane"}).subject == "Hello Jane"

    def test_syntax_error_raises(self, engine):
        with pytest.raises(TemplateRenderError):
            engine.render(_sms_template("Hi {{ pet_name "), {"pet_name": "Biscuit"})

    def test_sms_segment_warning(self, engine):
        template = _sms_template("{{ body }}", [TemplateVariable(name="body")])

        rendered = engine.render(template, {"body": "x" * 200})

        assert rendered.segment_count == 2
        assert rendered.warnings == ["Message is 200 characters (2 SMS segments)"]

    def test_single_segment_sms_has_no_warning(self, engine):
        rendered = engine.render(_sms_template("short"), {})

        assert rendered.segment_count == 1
        assert rendered.warnings == []

    def test_long_email_has_no_segment_warning(self, engine, promo_email_template):
        template = promo_email_template.model_copy(update={"body_template_text": "x" * 500})

        assert engine.render(template, {}).warnings == []


class TestSegmentCount:
    @pytest.mark.parametrize(
        "length,expected",
        [(0, 0), (1, 1), (160, 1), (161, 2), (306, 2), (307, 3), (459, 3), (460, 4)],
    )
    def test_segment_boundaries(self, length, expected):
        assert TemplateEngine.segment_count("x" * length) == expected


class TestValidate:
    def test_missing_required_variable_is_an_error(self, engine, booking_email_template):
        result = engine.validate(booking_email_template, ["customer_name", "pet_name"])

        assert not result.valid
        assert result.errors == ["Required variable 'appointment_date' was not provided"]

    def test_all_required_present(self, engine, booking_email_template):
        result = engine.validate(
            booking_email_template, ["customer_name", "pet_name", "appointment_date"]
        )

        assert result.valid
        assert result.errors == []

    def test_undeclared_reference_is_a_warning(self, engine):
        template = _sms_template(
            "{{ pet_name }} {{ groomer }} {{ business.name }}",
            [TemplateVariable(name="pet_name")],
        )

        result = engine.validate(template, ["pet_name"])

        assert result.valid
        assert result.warnings == ["Variable 'groomer' is not defined in template variables list"]

    def test_syntax_error_is_reported(self, engine):
        result = engine.validate(_sms_template("{% if %}"), [])

        assert not result.valid
        assert result.errors[0].startswith("Invalid template syntax in text body")


class TestCharacterCount:
    def test_declared_max_length(self, engine):
        variables = [TemplateVariable(name="name", max_length=10)]

        assert engine.character_count("Hi {{ name }}", variables) == 3 + 10

    def test_undeclared_variable_uses_default(self, engine):
        assert engine.character_count("Hi {{ name }}") == 3 + DEFAULT_VARIABLE_LENGTH

    def test_business_reference_uses_actual_value(self, engine):
        assert engine.character_count("{{ business.phone }}") == len("(657) 252-2903")

    def test_long_url_counts_as_shortened(self, engine):
        url = "https://thepuppyday.com/report-cards/2025/11/20/biscuit"
        text = f"See {url}"

        assert engine.character_count(text) == len("See ") + SHORTENED_URL_LENGTH

    def test_template_text_is_not_modified(self, engine):
        text = "Hi {{ name }}"
        engine.character_count(text)

        assert text == "Hi {{ name }}"

    def test_estimate_sms(self, engine):
        template = _sms_template("{{ note }}", [TemplateVariable(name="note", max_length=200)])

        estimate = engine.estimate_sms(template)

        assert estimate.max_length == 200
        assert estimate.exceeds_single_segment is True
        assert estimate.estimated_segments == 2
