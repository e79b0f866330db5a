from rest_framework.exceptions import ValidationError


def int_query_param(request, name, *, required=False, default=None):
    """Read a positive integer query parameter; anything else is a 400."""
    value = request.query_params.get(name)
    if value in (None, ''):
        if required:
            raise ValidationError({name: f"A numeric {name} query parameter is required."})
        return default
    if not value.isdigit():
        raise ValidationError({name: f"{name} must be a positive integer."})
    return int(value)
