from types import SimpleNamespace


def make_field(field_id, api_name, column_name=None, is_sensitive=False, is_standard=False, label=None):
    return SimpleNamespace(
        id=field_id,
        api_name=api_name,
        label=label or api_name.replace("_", " ").title(),
        column_name=column_name,
        is_standard=is_standard,
        is_sensitive=is_sensitive,
    )


def make_permission(field_id, is_visible=True, is_editable=True):
    return SimpleNamespace(field_definition_id=field_id, is_visible=is_visible, is_editable=is_editable)


def contact_fields():
    return [
        make_field("f1", "first_name", "first_name", is_standard=True),
        make_field("f2", "email", "email", is_standard=True),
        make_field("f3", "phone_number", "phone", is_standard=True),
        make_field("f4", "due_date", None),
        make_field("f5", "medical_info", None, is_sensitive=True),
    ]
