from procflow.runtime import resolve_instance_name, substitute_variables
from procflow.runtime.naming import placeholders


def test_substitute_variables_with_normalized_fallback():
    text = substitute_variables(
        "Invoice {{number}} for {{ Client Name }}",
        {"number": 42, "client_name": "ACME"},
    )

    assert text == "Invoice 42 for ACME"


def test_unresolved_placeholders_are_kept():
    assert substitute_variables("{{a}}-{{b}}", {"a": "x", "b": ""}) == "x-{{b}}"


def test_resolve_instance_name_requires_every_value():
    template = "Trip {{destination}} ({{Start Date}})"

    assert resolve_instance_name(template, {"destination": "Lima"}) is None
    assert (
        resolve_instance_name(template, {"destination": "Lima", "start_date": "2024-05-02"})
        == "Trip Lima (2024-05-02)"
    )
    assert resolve_instance_name(None, {"destination": "Lima"}) is None
    assert resolve_instance_name("", {}) is None


def test_placeholders():
    assert placeholders("{{ a }} and {{b}}") == ["a", "b"]
