from rest_framework import permissions


class IsInternalUser(permissions.BasePermission):
    """
    Allows access only to the tenant's own team (users without a client).
    """
    message = 'Only internal users can perform this action.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_internal)
