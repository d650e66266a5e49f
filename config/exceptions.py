from rest_framework.views import exception_handler as drf_exception_handler


def exception_handler(exc, context):
    """
    Render every API error as {"error": "<message>"}.

    Field level validation errors from serializers keep their per-field
    structure under "errors" so clients can still show them inline.
    """
    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    if isinstance(detail, dict) and set(detail) == {'detail'}:
        response.data = {'error': str(detail['detail'])}
    elif isinstance(detail, list):
        response.data = {'error': ' '.join(str(item) for item in detail)}
    else:
        response.data = {'error': 'Invalid input', 'errors': detail}
    return response
