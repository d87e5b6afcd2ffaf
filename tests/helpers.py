def field_spec(**overrides):
    """A valid text field definition; override whatever the test cares about."""
    spec = {
        "field_type": "text",
        "field_name": "Full name",
        "x_position": 0.1,
        "y_position": 0.1,
        "width": 0.3,
        "height": 0.05,
        "required": True,
    }
    spec.update(overrides)
    return spec
