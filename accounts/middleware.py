from accounts.services.gateway_service import GatewayContext


class GatewayContextMiddleware:
    """Attach the caller's user/org/location context from request headers."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.gateway_context = GatewayContext.from_request(request)
        return self.get_response(request)
