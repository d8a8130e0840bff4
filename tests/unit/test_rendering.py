from hrflow.rendering import render_config, resolve_path


def test_resolve_path_walks_mappings_and_lists():
    context = {"employee": {"emails": ["a@example.com", "b@example.com"]}}
    assert resolve_path(context, "employee.emails.1") == "b@example.com"
    assert resolve_path(context, "employee.phone", "n/a") == "n/a"
    assert resolve_path(context, "employee.emails.5") is None


def test_render_config_substitutes_placeholders():
    context = {"employee": {"first_name": "Ada", "id": 7}, "courses": ["ethics"]}
    config = {
        "subject": "Welcome {{ employee.first_name }}!",
        "employee_id": "{{employee.id}}",
        "courses": "{{ courses }}",
        "nested": [{"to": "{{ employee.first_name }}"}],
        "unknown": "Hi {{ manager.name }}",
        "count": 3,
    }
    rendered = render_config(config, context)
    assert rendered == {
        "subject": "Welcome Ada!",
        "employee_id": 7,
        "courses": ["ethics"],
        "nested": [{"to": "Ada"}],
        "unknown": "Hi {{ manager.name }}",
        "count": 3,
    }
    assert config["subject"] == "Welcome {{ employee.first_name }}!"
