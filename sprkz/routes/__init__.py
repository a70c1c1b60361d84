from flask import current_app, request

from sprkz.errors import DefinitionError


def current_engine():
    return current_app.extensions['automation_engine']


def current_event_logger():
    return current_app.extensions['event_logger']


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DefinitionError("Request body must be a JSON object")
    return data


def limit_arg(default: int = 50, maximum: int = 500) -> int:
    try:
        value = int(request.args.get('limit', default))
    except (TypeError, ValueError):
        raise DefinitionError("limit must be an integer")
    return min(max(value, 1), maximum)
