from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError

from sprkz.errors import DefinitionError

M = TypeVar('M', bound=BaseModel)


def parse_definition(schema: Type[M], data: Dict[str, Any]) -> M:
    """Validate submitted definition data, raising DefinitionError on failure."""
    if not isinstance(data, dict):
        raise DefinitionError("Request body must be a JSON object")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        details = [
            {
                'field': '.'.join(str(part) for part in err['loc']),
                'message': err['msg'],
            }
            for err in e.errors()
        ]
        first = details[0] if details else {'field': '', 'message': str(e)}
        message = f"{first['field']}: {first['message']}" if first['field'] else first['message']
        raise DefinitionError(message, details) from e
