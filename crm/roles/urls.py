from django.urls import path
from .views import (
    role_list_create, role_detail, role_modules, role_permission_groups,
    role_permission_switches, role_permission_tree, permission_group_list,
    user_role_list_create, my_permissions,
)

urlpatterns = [
    path('roles/', role_list_create, name='role-list-create'),
    path('roles/permissions/', role_modules, name='role-modules'),
    path('roles/permissions/groups/', role_permission_groups, name='role-permission-groups'),
    path('roles/permissions/switches/', role_permission_switches, name='role-permission-switches'),
    path('roles/<int:pk>/', role_detail, name='role-detail'),
    path('roles/<int:pk>/permission-groups/', role_permission_tree, name='role-permission-tree'),
    path('permission-groups/', permission_group_list, name='permission-group-list'),
    path('user-roles/', user_role_list_create, name='user-role-list-create'),
    path('permissions/me/', my_permissions, name='my-permissions'),
]
