from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser, Role, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    fk_name = 'user'
    extra = 0
    fields = ['role', 'assigned_by', 'assigned_at', 'is_active']
    readonly_fields = ['assigned_at']


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    inlines = [UserRoleInline]
    list_display = ['email', 'full_name', 'employee_id', 'get_roles', 'is_active', 'date_joined']
    list_filter = ['is_active', 'is_staff', 'shift']
    search_fields = ['email', 'first_name', 'last_name', 'employee_id']
    ordering = ['-date_joined']

    fieldsets = (
        (None, {'fields': ('email', 'username', 'password')}),
        ('Personal info', {'fields': ('first_name', 'last_name', 'phone_number', 'employee_id', 'shift')}),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser'),
        }),
        ('Important dates', {'fields': ('last_login', 'date_joined')}),
    )
    readonly_fields = ['date_joined', 'last_login']

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'password1', 'password2'),
        }),
    )

    def get_roles(self, obj):
        roles = [ur.role.get_name_display() for ur in obj.user_roles.filter(is_active=True).select_related('role')]
        return ', '.join(roles) or '-'
    get_roles.short_description = 'Roles'


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['get_name_display', 'hierarchy_level', 'description']
    search_fields = ['name', 'description']
    ordering = ['hierarchy_level']

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'description', 'hierarchy_level')
        }),
        ('Permissions', {
            'fields': ('permissions',),
            'classes': ('collapse',)
        }),
    )


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'assigned_by', 'assigned_at', 'is_active']
    list_filter = ['role', 'is_active', 'assigned_at']
    search_fields = ['user__email', 'user__first_name', 'user__last_name']
    date_hierarchy = 'assigned_at'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('user', 'role', 'assigned_by')


admin.site.site_header = 'Metalworks ERP Administration'
admin.site.site_title = 'Metalworks ERP Admin'
admin.site.index_title = 'Production & Quality'
