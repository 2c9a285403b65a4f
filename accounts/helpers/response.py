import logging

from django.http import JsonResponse

from stock.services.base_service import ServiceError

logger = logging.getLogger(__name__)


class APIResponse:

    @staticmethod
    def success(data=None, message='Success', status=200):
        payload = {'success': True, 'message': message}
        if data:
            payload.update(data)
        return JsonResponse(payload, status=status)

    @staticmethod
    def created(data=None, message='Created'):
        return APIResponse.success(data=data, message=message, status=201)

    @staticmethod
    def error(message, code='ERROR', status=400, details=None):
        response = JsonResponse({
            'success': False,
            'error': {
                'code': code,
                'message': message,
                'details': details or {},
            },
        }, status=status)
        response.error_message = message
        return response


def handle_service_error(e: Exception):
    if isinstance(e, ServiceError):
        return APIResponse.error(e.message, e.code, e.status_code, e.details)

    logger.exception("Unhandled error: %s", e)
    return APIResponse.error('Internal server error', 'INTERNAL_ERROR', 500)
