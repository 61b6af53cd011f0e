from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient

from authentication.models import Role, UserRole
from authentication.services import PermissionService, sync_default_roles
from utils.enums import RoleChoices
from utils.exceptions import Unauthorized

User = get_user_model()


class PermissionServiceTest(TestCase):
    """Test cases for role based permission checks"""

    def setUp(self):
        cache.clear()
        sync_default_roles()
        self.user = User.objects.create_user(
            email='supervisor@example.com',
            password='testpass123',
            first_name='Shop',
            last_name='Supervisor'
        )
        self.user_role = UserRole.objects.create(
            user=self.user, role=Role.objects.get(name=RoleChoices.SUPERVISOR)
        )

    def test_role_grants(self):
        self.assertTrue(PermissionService.has_permission(self.user, 'production', 'record'))
        self.assertFalse(PermissionService.has_permission(self.user, 'production', 'override'))
        self.assertFalse(PermissionService.has_permission(self.user, 'dispatch', 'allocate'))
        self.assertTrue(PermissionService.has_role(self.user, RoleChoices.SUPERVISOR))

    def test_require_permission_raises(self):
        with self.assertRaises(Unauthorized):
            PermissionService.require_permission(self.user, 'work_orders', 'override')

    def test_admin_wildcard(self):
        admin = User.objects.create_user(email='admin@example.com', password='x', first_name='A', last_name='B')
        UserRole.objects.create(user=admin, role=Role.objects.get(name=RoleChoices.ADMIN))
        self.assertTrue(PermissionService.has_permission(admin, 'anything', 'at_all'))

    def test_superuser_and_inactive_users(self):
        root = User.objects.create_superuser(email='root@example.com', password='x', first_name='R', last_name='T')
        self.assertTrue(PermissionService.has_permission(root, 'dispatch', 'reverse'))

        self.user.is_active = False
        self.user.save()
        self.assertFalse(PermissionService.has_permission(self.user, 'production', 'record'))

    def test_role_assignment_invalidates_cache(self):
        self.assertFalse(PermissionService.has_permission(self.user, 'quality', 'record'))

        UserRole.objects.create(user=self.user, role=Role.objects.get(name=RoleChoices.QUALITY))
        self.assertTrue(PermissionService.has_permission(self.user, 'quality', 'record'))

        self.user_role.is_active = False
        self.user_role.save()
        self.assertFalse(PermissionService.has_permission(self.user, 'production', 'record'))

    def test_role_change_invalidates_members(self):
        self.assertTrue(PermissionService.has_permission(self.user, 'production', 'end'))

        role = Role.objects.get(name=RoleChoices.SUPERVISOR)
        role.permissions = {'production': ['record']}
        role.save()

        self.assertFalse(PermissionService.has_permission(self.user, 'production', 'end'))

    def test_users_with_role(self):
        other = User.objects.create_user(email='other@example.com', password='x', first_name='O', last_name='T')
        self.assertEqual(list(PermissionService.users_with_role(RoleChoices.SUPERVISOR)), [self.user])
        self.assertNotIn(other, PermissionService.users_with_role(RoleChoices.SUPERVISOR))

    def test_sync_is_idempotent(self):
        results = sync_default_roles()
        self.assertFalse(any(created for _, created in results))
        self.assertEqual(Role.objects.count(), len(RoleChoices))


class PermissionsEndpointTest(TestCase):

    def setUp(self):
        cache.clear()
        sync_default_roles()
        self.user = User.objects.create_user(
            email='packer@example.com', password='testpass123', first_name='Pack', last_name='Er'
        )
        UserRole.objects.create(user=self.user, role=Role.objects.get(name=RoleChoices.PACKING))
        self.client = APIClient()

    def test_effective_permissions(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/auth/permissions/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['permissions'], {'packing': ['pack']})

    def test_anonymous_rejected(self):
        response = self.client.get('/api/auth/permissions/')
        self.assertEqual(response.status_code, 401)
