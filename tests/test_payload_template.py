"""
Tests for payload template rendering.
"""

import json
from datetime import datetime

import pytest

from sprkz.errors import TemplateError
from sprkz.services.payload_template import PayloadTemplate, resolve_path, _MISSING

TRIGGER = {
    "customer": {"email": "ada@example.com", "name": "Ada"},
    "items": [{"sku": "A-1", "qty": 2}],
    "total": 42.5,
    "gift": False,
}


def test_no_template_sends_trigger_data():
    assert PayloadTemplate("json", None).render(TRIGGER) == TRIGGER


def test_pdf_payload_sends_trigger_data():
    assert PayloadTemplate("pdf", '{"ignored": true}').render(TRIGGER) == TRIGGER


def test_json_template_keeps_value_types():
    template = PayloadTemplate("json", json.dumps({
        "email": "{{ customer.email }}",
        "total": "{{total}}",
        "gift": "{{ gift }}",
        "first_item": "{{ items.0 }}",
        "greeting": "Hi {{ customer.name }}!",
    }))

    body = template.render(TRIGGER)

    assert body == {
        "email": "ada@example.com",
        "total": 42.5,
        "gift": False,
        "first_item": {"sku": "A-1", "qty": 2},
        "greeting": "Hi Ada!",
    }


def test_json_template_nested_lists():
    template = PayloadTemplate("json", '{"lines": [{"sku": "{{ items.0.sku }}"}]}')
    assert template.render(TRIGGER) == {"lines": [{"sku": "A-1"}]}


def test_unknown_variables():
    template = PayloadTemplate("json", '{"a": "{{ missing }}", "b": "x{{ missing.deep }}y"}')
    assert template.render(TRIGGER) == {"a": None, "b": "xy"}


def test_dynamic_template_is_text():
    template = PayloadTemplate("dynamic", "name={{ customer.name }}&gift={{ gift }}")
    assert template.render(TRIGGER) == "name=Ada&gift=false"


def test_builtin_variables():
    template = PayloadTemplate("json", '{"run": "{{ execution_id }}", "at": "{{ timestamp }}"}')

    body = template.render({}, execution_id=17)

    assert body["run"] == 17
    datetime.fromisoformat(body["at"])


def test_trigger_data_shadows_builtins():
    template = PayloadTemplate("json", '{"at": "{{ timestamp }}"}')
    assert template.render({"timestamp": "yesterday"}) == {"at": "yesterday"}


def test_invalid_json_template_raises():
    with pytest.raises(TemplateError):
        PayloadTemplate("json", "{not json").render(TRIGGER)


def test_no_expressions_are_evaluated():
    template = PayloadTemplate("dynamic", "{{ total * 2 }} {{ __import__('os') }}")
    assert template.render(TRIGGER) == "{{ total * 2 }} {{ __import__('os') }}"


def test_resolve_path_out_of_range():
    assert resolve_path(TRIGGER, "items.3.sku") is _MISSING
    assert resolve_path(TRIGGER, "customer.email.domain") is _MISSING
