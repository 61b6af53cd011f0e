from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models

from authentication.services import permissions_allow
from utils.enums import RoleChoices, ShiftChoices


class CustomUserManager(BaseUserManager):
    """
    Email is the login; username is kept for display and defaults to the email
    """
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        extra_fields.setdefault('username', email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        return self._create_user(email, password, **extra_fields)


class CustomUser(AbstractUser):
    """
    Custom User model extending Django's AbstractUser
    """
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=30)
    last_name = models.CharField(max_length=30)
    phone_number = models.CharField(max_length=15, blank=True, null=True)
    employee_id = models.CharField(max_length=20, blank=True, null=True, unique=True)
    shift = models.CharField(max_length=5, choices=ShiftChoices.choices, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.email})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self):
        return self.full_name or self.email


class Role(models.Model):
    """
    Role with module-level permissions.

    ``permissions`` maps a module name to the actions allowed in it, e.g.
    ``{"production": ["record", "advance"], "quality": ["*"]}``. The module key
    ``"*"`` grants every module.
    """
    name = models.CharField(max_length=50, choices=RoleChoices.choices, unique=True)
    description = models.TextField(blank=True)
    hierarchy_level = models.IntegerField(default=5, help_text="Lower number = higher authority")
    permissions = models.JSONField(default=dict)

    class Meta:
        verbose_name = 'Role'
        verbose_name_plural = 'Roles'
        ordering = ['hierarchy_level']

    def __str__(self):
        return self.get_name_display()

    def allows(self, module, action):
        return permissions_allow(self.permissions, module, action)


class UserRole(models.Model):
    """
    User role assignments with audit trail
    """
    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='user_roles')
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='role_users')
    assigned_by = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='roles_assigned')
    assigned_at = models.DateTimeField(auto_now_add=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ['user', 'role']
        verbose_name = 'User Role'
        verbose_name_plural = 'User Roles'

    def __str__(self):
        return f"{self.user.full_name} - {self.role.name}"
