"""
Permission service used by every mutating engine operation.

Roles and their module permissions live in ``Role.permissions``; a user's
effective grants are the union over their active ``UserRole`` rows. Lookups are
cached per user and invalidated by the signals in ``authentication.signals``.
"""
import logging

from django.core.cache import cache

from utils.config import erp_setting
from utils.enums import RoleChoices
from utils.exceptions import Unauthorized

logger = logging.getLogger(__name__)


# Default module -> actions grants, loaded by ``manage.py setup_roles``
DEFAULT_ROLE_PERMISSIONS = {
    RoleChoices.ADMIN: {'*': ['*']},
    RoleChoices.MANAGER: {
        'work_orders': ['create', 'transition', 'override', 'overage'],
        'production': ['batch', 'record', 'complete', 'advance', 'override', 'end'],
        'external': ['send', 'transit', 'receive', 'forward'],
        'inventory': ['receive', 'issue'],
        'quality': ['record', 'waive'],
        'packing': ['pack'],
        'dispatch': ['allocate', 'block', 'release', 'short_close', 'reverse'],
    },
    RoleChoices.PRODUCTION_HEAD: {
        'work_orders': ['create', 'transition', 'override', 'overage'],
        'production': ['batch', 'record', 'complete', 'advance', 'override', 'end'],
        'external': ['send', 'transit', 'receive', 'forward'],
        'inventory': ['issue'],
        'dispatch': ['block', 'release', 'short_close'],
    },
    RoleChoices.SUPERVISOR: {
        'work_orders': ['transition'],
        'production': ['batch', 'record', 'complete', 'advance', 'end'],
        'external': ['send', 'transit', 'receive'],
    },
    RoleChoices.QUALITY: {
        'quality': ['record', 'waive'],
        'dispatch': ['block', 'release'],
    },
    RoleChoices.RM_STORE: {
        'inventory': ['receive', 'issue'],
    },
    RoleChoices.PACKING: {
        'packing': ['pack'],
    },
    RoleChoices.LOGISTICS: {
        'external': ['send', 'transit', 'receive', 'forward'],
        'dispatch': ['allocate', 'reverse'],
    },
    RoleChoices.OPERATOR: {
        'production': ['record'],
    },
}


def permissions_allow(permissions, module, action):
    for key in (module, '*'):
        actions = permissions.get(key) or []
        if '*' in actions or action in actions:
            return True
    return False


def _cache_key(user_id):
    return f'user_permissions_{user_id}'


class PermissionService:
    """
    Role and permission checks with per-user caching
    """

    @staticmethod
    def _grants(user):
        """Return (role names, [permission dicts]) for the user's active roles"""
        key = _cache_key(user.pk)
        grants = cache.get(key)
        if grants is None:
            roles = user.user_roles.filter(is_active=True).select_related('role')
            grants = (
                [ur.role.name for ur in roles],
                [ur.role.permissions for ur in roles],
            )
            cache.set(key, grants, erp_setting('PERMISSION_CACHE_SECONDS'))
        return grants

    @staticmethod
    def invalidate(user_id):
        cache.delete(_cache_key(user_id))

    @staticmethod
    def has_role(user, role):
        if not user or not user.is_authenticated:
            return False
        names, _ = PermissionService._grants(user)
        return role in names

    @staticmethod
    def has_permission(user, module, action):
        if not user or not user.is_authenticated or not user.is_active:
            return False
        if user.is_superuser:
            return True

        _, permission_sets = PermissionService._grants(user)
        return any(permissions_allow(p, module, action) for p in permission_sets)

    @staticmethod
    def require_permission(user, module, action):
        if not PermissionService.has_permission(user, module, action):
            who = getattr(user, 'email', None) or 'anonymous'
            logger.warning(f"Permission denied: {who} lacks {module}.{action}")
            raise Unauthorized(f"{module}.{action} permission required")

    @staticmethod
    def users_with_role(role):
        from authentication.models import CustomUser
        return CustomUser.objects.filter(
            is_active=True,
            user_roles__is_active=True,
            user_roles__role__name=role,
        ).distinct()


ROLE_HIERARCHY_LEVELS = {
    RoleChoices.ADMIN: 1,
    RoleChoices.MANAGER: 2,
    RoleChoices.PRODUCTION_HEAD: 2,
    RoleChoices.SUPERVISOR: 3,
    RoleChoices.QUALITY: 3,
    RoleChoices.RM_STORE: 4,
    RoleChoices.PACKING: 4,
    RoleChoices.LOGISTICS: 4,
    RoleChoices.OPERATOR: 5,
}


def sync_default_roles():
    """
    Create or update every role with its default permissions.
    Returns a list of (role, created) pairs.
    """
    from authentication.models import Role

    results = []
    for name, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        role, created = Role.objects.update_or_create(
            name=name,
            defaults={
                'description': RoleChoices(name).label,
                'hierarchy_level': ROLE_HIERARCHY_LEVELS[name],
                'permissions': permissions,
            }
        )
        results.append((role, created))
    return results
