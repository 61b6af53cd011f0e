from rest_framework import serializers

from .models import CustomUser, Role, UserRole


class RoleSerializer(serializers.ModelSerializer):
    name_display = serializers.CharField(source='get_name_display', read_only=True)

    class Meta:
        model = Role
        fields = ['id', 'name', 'name_display', 'description', 'hierarchy_level', 'permissions']
        read_only_fields = ['id']


class UserRoleSerializer(serializers.ModelSerializer):
    role_details = RoleSerializer(source='role', read_only=True)
    assigned_by_name = serializers.CharField(source='assigned_by.full_name', read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'role', 'role_details', 'assigned_by', 'assigned_by_name', 'assigned_at', 'is_active']
        read_only_fields = ['id', 'assigned_at', 'assigned_by']


class UserDetailSerializer(serializers.ModelSerializer):
    """
    User with active roles, used by the profile endpoint
    """
    roles = serializers.SerializerMethodField()

    class Meta:
        model = CustomUser
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'employee_id', 'shift', 'phone_number', 'is_active', 'roles'
        ]
        read_only_fields = ['id', 'email', 'is_active']

    def get_roles(self, obj):
        return [
            {'name': ur.role.name, 'display': ur.role.get_name_display()}
            for ur in obj.user_roles.filter(is_active=True).select_related('role')
        ]


class AssignRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[])

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['role'].choices = list(Role.objects.values_list('name', 'name'))
