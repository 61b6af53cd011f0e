from rest_framework.permissions import BasePermission

from authentication.services import PermissionService


class HasModulePermission(BasePermission):
    """
    Checks ``view.permission_module`` against the action mapped for the current
    viewset action in ``view.permission_actions``. Read-only actions are open to
    any authenticated user; engine services re-check on every mutation.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        module = getattr(view, 'permission_module', None)
        actions = getattr(view, 'permission_actions', {})
        required = actions.get(getattr(view, 'action', None))
        if not module or not required:
            return True
        return PermissionService.has_permission(request.user, module, required)


class IsAdminOrManager(BasePermission):
    """
    Permission for Admin or Manager roles only
    """
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True
        return any(PermissionService.has_role(request.user, role) for role in ('admin', 'manager'))
