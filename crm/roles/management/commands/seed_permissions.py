from django.core.management.base import BaseCommand
from django.db import transaction

from crm.roles.models import Role, RoleModule, PermissionGroup, PermissionSwitch


SYSTEM_ROLES = [
    {
        'slug': 'super_admin',
        'name': 'Super Admin',
        'description': 'Full access to every workspace module',
        'permissions': {'all': True},
        'modules': None,
    },
    {
        'slug': 'admin',
        'name': 'Admin',
        'description': 'Workspace administrator',
        'permissions': {'all': True},
        'modules': None,
    },
    {
        'slug': 'manager',
        'name': 'Manager',
        'description': 'Supervises agents, orders and customers',
        'permissions': {},
        'modules': ['dashboard', 'chats', 'customers', 'orders', 'payments', 'products', 'scheduled_messages', 'kanban'],
    },
    {
        'slug': 'agent',
        'name': 'Agent',
        'description': 'Attends conversations and registers orders',
        'permissions': {},
        'modules': ['chats', 'customers', 'orders', 'products'],
    },
]

PERMISSION_GROUPS = [
    {
        'slug': 'chat', 'name': 'Chat', 'icon': 'message-circle',
        'switches': [
            ('chat_view_all', 'View all conversations'),
            ('chat_assign', 'Assign conversations'),
            ('chat_send_attachments', 'Send attachments'),
        ],
    },
    {
        'slug': 'sales', 'name': 'Sales', 'icon': 'shopping-cart',
        'switches': [
            ('orders_create', 'Create orders'),
            ('orders_cancel', 'Cancel orders'),
            ('payments_register', 'Register payments'),
        ],
    },
    {
        'slug': 'catalog', 'name': 'Catalog', 'icon': 'package',
        'switches': [
            ('products_edit', 'Edit products'),
            ('stock_adjust', 'Adjust stock'),
        ],
    },
    {
        'slug': 'customers', 'name': 'Customers', 'icon': 'users',
        'switches': [
            ('customers_export', 'Export customers'),
            ('customers_delete', 'Delete customers'),
        ],
    },
]


class Command(BaseCommand):
    help = 'Create system roles and the permission group/switch catalog'

    @transaction.atomic
    def handle(self, *args, **options):
        created_count = 0
        existing_count = 0

        for role_config in SYSTEM_ROLES:
            role, created = Role.objects.get_or_create(
                workspace=None,
                slug=role_config['slug'],
                defaults={
                    'name': role_config['name'],
                    'description': role_config['description'],
                    'permissions': role_config['permissions'],
                    'is_system_role': True,
                },
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created role: {role.slug}'))
                created_count += 1
            else:
                self.stdout.write(f'  Role already exists: {role.slug}')
                existing_count += 1

            for module_slug in role_config['modules'] or []:
                RoleModule.objects.get_or_create(
                    role=role, module_slug=module_slug, defaults={'is_active': True}
                )

        for order, group_config in enumerate(PERMISSION_GROUPS):
            group, _ = PermissionGroup.objects.update_or_create(
                slug=group_config['slug'],
                defaults={
                    'name': group_config['name'],
                    'icon': group_config['icon'],
                    'sort_order': order,
                    'is_system': True,
                },
            )
            for switch_order, (slug, name) in enumerate(group_config['switches']):
                PermissionSwitch.objects.update_or_create(
                    slug=slug,
                    defaults={'group': group, 'name': name, 'sort_order': switch_order},
                )

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} roles created, {existing_count} roles already existed, '
            f'{len(PERMISSION_GROUPS)} permission groups synced'
        ))
