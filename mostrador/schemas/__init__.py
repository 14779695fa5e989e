"""Request payload schemas (pydantic)."""
from pydantic import ValidationError as PydanticValidationError

from mostrador.exceptions import ValidationError


def load(schema, data):
    """
    Validate ``data`` against ``schema``.

    Raises:
        ValidationError: with one ``{'field', 'message'}`` entry per problem.
    """
    try:
        return schema.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        details = [
            {
                'field': '.'.join(str(part) for part in err['loc']) or '__root__',
                'message': err['msg'],
            }
            for err in e.errors()
        ]
        raise ValidationError('Datos inválidos', details=details)
