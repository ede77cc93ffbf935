from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission

from chat.errors import Unauthorized
from .gate import extract_bearer_token, get_gate


class BearerTokenAuthentication(BaseAuthentication):
    """DRF face of the Supabase gate.

    No header means "not authenticated" (the permission below answers 401);
    a header that the gate rejects fails immediately.
    """

    def authenticate(self, request):
        header = request.META.get("HTTP_AUTHORIZATION")
        if not extract_bearer_token(header):
            return None
        try:
            principal = get_gate().authenticate(header)
        except Unauthorized as e:
            raise AuthenticationFailed(e.message)
        return principal, extract_bearer_token(header)

    def authenticate_header(self, request):
        return 'Bearer realm="api"'


class IsBearerAuthenticated(BasePermission):
    message = "Unauthorized: No token provided"

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return bool(user and getattr(user, "is_authenticated", False))
