from rest_framework.permissions import BasePermission


class HasRole(BasePermission):
    """
    Route-level role gate. Subclass and set `allowed_roles`, or build one
    inline with `HasRole.of(...)`.
    """
    allowed_roles = frozenset()
    message = "Your role is not allowed to perform this action."

    def has_permission(self, request, view):
        return (
            request.user.is_authenticated and
            request.user.role in self.allowed_roles
        )

    @classmethod
    def of(cls, *roles):
        return type(
            "HasRole_" + "_".join(str(r) for r in roles),
            (cls,),
            {"allowed_roles": frozenset(roles)},
        )
