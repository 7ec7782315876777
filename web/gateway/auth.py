"""DRF authentication that trusts the upstream auth layer's actor headers.

Session and OTP login live in a separate service. Requests reach this app
through the edge proxy, which replaces any client-supplied ``X-Actor-Id`` /
``X-Actor-Role`` headers with the authenticated identity. This class turns
those headers into a typed ``Actor`` exactly once per request.
"""

from rest_framework import authentication, exceptions

from apps.orders.domain import Actor, Role


class ActorUser:
    """Minimal user object DRF's permission classes can inspect."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, actor: Actor):
        self.actor = actor
        self.id = actor.id
        self.pk = actor.id

    def __str__(self):
        return f"{self.actor.role.value}:{self.actor.id}"


class ActorHeaderAuthentication(authentication.BaseAuthentication):
    ID_HEADER = "HTTP_X_ACTOR_ID"
    ROLE_HEADER = "HTTP_X_ACTOR_ROLE"

    def authenticate(self, request):
        actor_id = request.META.get(self.ID_HEADER, "").strip()
        if not actor_id:
            return None
        role = request.META.get(self.ROLE_HEADER, "").strip().lower()
        try:
            actor = Actor(id=actor_id, role=Role(role))
        except ValueError:
            raise exceptions.AuthenticationFailed("Unknown actor role")
        return ActorUser(actor), None

    def authenticate_header(self, request):
        # Non-empty so DRF answers 401 instead of 403
        return "Actor"
