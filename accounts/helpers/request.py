from rest_framework.exceptions import ParseError

from accounts.helpers.response import APIResponse


def parse_json_body(request):
    try:
        data = request.data
    except ParseError as e:
        return None, APIResponse.error(f'Invalid JSON body: {e.detail}', 'VALIDATION_ERROR', 400)

    if not isinstance(data, dict):
        return None, APIResponse.error('JSON body must be an object', 'VALIDATION_ERROR', 400)

    return data, None


def query_int(request, name, default=None):
    value = request.GET.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        return default


def query_bool(request, name, default=False):
    value = request.GET.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes')
