"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.text import slugify
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from crm.workspaces.models import Workspace, WorkspaceMember, WorkspaceAgent
from crm.roles.models import Role, UserRole
from crm.parties.models import Customer, Tag
from crm.catalog.models import Category, Product, ProductVariant
from crm.orders.models import Order
from crm.chat.models import InboxChannel
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
            **extra
        )

    @staticmethod
    def create_workspace(owner=None, name=None, **extra):
        """Create a workspace; the owner is also recorded as an admin member"""
        if not owner:
            owner = TestDataFactory.create_user()
        if not name:
            name = f'Workspace {TestDataFactory.random_string(6)}'
        workspace = Workspace.objects.create(
            name=name,
            slug=slugify(name),
            owner=owner,
            **extra
        )
        WorkspaceMember.objects.create(workspace=workspace, user=owner, role='admin')
        return workspace

    @staticmethod
    def create_member(workspace, user=None, role='agent'):
        """Add a member to a workspace"""
        if not user:
            user = TestDataFactory.create_user()
        WorkspaceMember.objects.create(workspace=workspace, user=user, role=role)
        return user

    @staticmethod
    def create_agent(workspace, user=None, invited_by=None):
        """Attach an agent to a workspace"""
        if not user:
            user = TestDataFactory.create_user()
        WorkspaceAgent.objects.create(workspace=workspace, agent=user, invited_by=invited_by)
        return user

    @staticmethod
    def create_role(workspace=None, name=None, slug=None, permissions=None, user=None):
        """Create a role and optionally give it to a user"""
        if not name:
            name = f'Role {TestDataFactory.random_string(6)}'
        role = Role.objects.create(
            workspace=workspace,
            name=name,
            slug=slug or slugify(name),
            permissions=permissions or {},
        )
        if user is not None:
            UserRole.objects.create(user=user, role=role, workspace=workspace)
        return role

    @staticmethod
    def create_tag(workspace, name=None, color='#6b7280'):
        """Create a test tag"""
        if not name:
            name = f'Tag_{TestDataFactory.random_string(6)}'
        return Tag.objects.create(workspace=workspace, name=name, color=color)

    @staticmethod
    def create_customer(workspace, name=None, phone=None, email=None, **extra):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'9{random.randint(100000000, 999999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Customer.objects.create(
            workspace=workspace,
            name=name,
            identity_document_type=extra.pop('identity_document_type', 'dni'),
            identity_document_number=extra.pop('identity_document_number', str(random.randint(10000000, 99999999))),
            email=email,
            phone=phone,
            **extra
        )

    @staticmethod
    def create_category(workspace, name=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            workspace=workspace,
            name=name,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_product(workspace, name=None, sku=None, price=None, stock=0, category=None, **extra):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        return Product.objects.create(
            workspace=workspace,
            name=name,
            sku=sku,
            price=price if price is not None else Decimal('100.00'),
            stock=stock,
            category=category,
            **extra
        )

    @staticmethod
    def create_variant(product, name=None, price=None, stock=0):
        """Create a test product variant"""
        if not name:
            name = f'Variant_{TestDataFactory.random_string(4)}'
        return ProductVariant.objects.create(
            product=product,
            name=name,
            sku=f'{product.sku}-{TestDataFactory.random_string(3)}',
            price=price,
            stock=stock
        )

    @staticmethod
    def create_order(workspace, customer=None, user=None, order_number=None, status='pending', total_amount=None):
        """Create a bare order row, without items or stock changes"""
        if not order_number:
            order_number = f'ORD-{timezone.now():%Y%m%d}-{random.randint(1000, 9999)}'
        total = total_amount if total_amount is not None else Decimal('100.00')
        return Order.objects.create(
            workspace=workspace,
            customer=customer,
            user=user,
            order_number=order_number,
            status=status,
            subtotal=total,
            total_amount=total
        )

    @staticmethod
    def create_inbox_channel(user, workspace, inbox_id=None, account_id=1, channel_type='whatsapp'):
        """Give a user access to a chat inbox"""
        return InboxChannel.objects.create(
            user=user,
            workspace=workspace,
            chatwoot_account_id=account_id,
            chatwoot_inbox_id=inbox_id or random.randint(1, 100000),
            inbox_name=f'Inbox {TestDataFactory.random_string(4)}',
            channel_type=channel_type
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
