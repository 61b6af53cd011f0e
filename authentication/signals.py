from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from authentication.models import Role, UserRole
from authentication.services import PermissionService


@receiver([post_save, post_delete], sender=UserRole)
def invalidate_user_permissions(sender, instance, **kwargs):
    PermissionService.invalidate(instance.user_id)


@receiver(post_save, sender=Role)
def invalidate_role_members(sender, instance, **kwargs):
    for user_id in instance.role_users.values_list('user_id', flat=True):
        PermissionService.invalidate(user_id)
