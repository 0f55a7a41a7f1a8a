# cores/context.py
from dataclasses import dataclass

from rest_framework.exceptions import NotAuthenticated


@dataclass(frozen=True)
class AuthContext:
    """
    The caller of a request, resolved once by the view and handed to
    service functions explicitly instead of being looked up again.
    """
    user: object
    role: str
    school: object = None

    @classmethod
    def from_request(cls, request):
        user = request.user
        if not user or not user.is_authenticated:
            raise NotAuthenticated("Authentication required")
        return cls(user=user, role=user.role, school=user.school)

    @property
    def school_id(self):
        return self.school.pk if self.school else None
