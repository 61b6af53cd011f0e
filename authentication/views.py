from rest_framework import mixins, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import ReadOnlyModelViewSet

from .models import CustomUser, Role, UserRole
from .permissions import IsAdminOrManager
from .serializers import AssignRoleSerializer, RoleSerializer, UserDetailSerializer
from .services import DEFAULT_ROLE_PERMISSIONS, PermissionService


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_profile(request):
    """Current user with active roles"""
    return Response(UserDetailSerializer(request.user).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_permissions(request):
    """Effective module permissions for the current user"""
    modules = {}
    for module, actions in _known_actions().items():
        allowed = [a for a in actions if PermissionService.has_permission(request.user, module, a)]
        if allowed:
            modules[module] = allowed
    return Response({'is_superuser': request.user.is_superuser, 'permissions': modules})


def _known_actions():
    known = {}
    for grants in DEFAULT_ROLE_PERMISSIONS.values():
        for module, actions in grants.items():
            if module == '*':
                continue
            known.setdefault(module, set()).update(a for a in actions if a != '*')
    return {module: sorted(actions) for module, actions in known.items()}


class RoleViewSet(ReadOnlyModelViewSet):
    queryset = Role.objects.all()
    serializer_class = RoleSerializer


class UserViewSet(mixins.UpdateModelMixin, ReadOnlyModelViewSet):
    """
    User administration (Admin/Manager only)
    """
    queryset = CustomUser.objects.prefetch_related('user_roles__role').order_by('email')
    serializer_class = UserDetailSerializer
    permission_classes = [IsAdminOrManager]
    filterset_fields = ['is_active', 'shift']

    @action(detail=True, methods=['post'], url_path='assign-role')
    def assign_role(self, request, pk=None):
        user = self.get_object()
        serializer = AssignRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = Role.objects.get(name=serializer.validated_data['role'])
        user_role, created = UserRole.objects.get_or_create(
            user=user, role=role, defaults={'assigned_by': request.user}
        )
        if not created and not user_role.is_active:
            user_role.is_active = True
            user_role.assigned_by = request.user
            user_role.save()

        return Response(
            UserDetailSerializer(user).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )
