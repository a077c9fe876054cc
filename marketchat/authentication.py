from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission

from marketchat.exceptions import Forbidden, Unauthenticated
from marketchat.identity import resolve_session


class SessionCredentialAuthentication(BaseAuthentication):
    def authenticate(self, request):
        """
        Authenticate a request from its session credential.

        The credential is read from an ``Authorization: Bearer <session key>``
        header, falling back to the session cookie. On success the resolved
        identity is attached to ``request.identity`` and ``request.user_id``.
        Requests without any credential are left anonymous so that the
        permission layer can answer with 401.
        """
        auth_header = request.headers.get("Authorization", "")
        if auth_header:
            parts = auth_header.split()
            if len(parts) != 2 or parts[0] != "Bearer":
                raise AuthenticationFailed("Wrong credential format. Expected 'Bearer <session>'")
            session_key = parts[1]
        else:
            session_key = request.COOKIES.get(settings.SESSION_COOKIE_NAME)

        if not session_key:
            return None

        try:
            identity = resolve_session(session_key)
        except Unauthenticated as e:
            raise AuthenticationFailed(e.message)

        request.identity = identity
        request.user_id = identity.identity_id
        return (AnonymousUser(), identity)

    def authenticate_header(self, request):
        return "Bearer"


class HasChatIdentity(BasePermission):
    message = "Authentication required"

    def has_permission(self, request, view):
        return getattr(request, "identity", None) is not None


def require_self(request, identity_id, allow_admin=False):
    """Raise Forbidden unless the caller is ``identity_id`` (or an admin, when allowed)."""
    identity = request.identity
    if allow_admin and identity.is_admin:
        return identity
    if identity.identity_id != str(identity_id):
        raise Forbidden("You can only act on behalf of your own identity")
    return identity
