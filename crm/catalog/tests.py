"""
Tests for categories, products, variants and product messages
"""
from decimal import Decimal
from django.test import TestCase, override_settings
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.catalog.models import Product, ProductVariant
from crm.catalog.utils import format_product_message
from crm.inventory.models import StockMovement


class ProductModelTests(TestCase):

    def setUp(self):
        self.workspace = TestDataFactory.create_workspace(default_min_stock_alert=5)

    def test_min_stock_alert_falls_back_to_workspace(self):
        product = TestDataFactory.create_product(self.workspace, stock=5)
        self.assertEqual(product.get_min_stock_alert(), 5)
        self.assertTrue(product.is_low_stock())

    def test_own_min_stock_alert(self):
        product = TestDataFactory.create_product(self.workspace, stock=5, min_stock_alert=2)
        self.assertFalse(product.is_low_stock())

    def test_variant_price_fallback(self):
        product = TestDataFactory.create_product(self.workspace, price=Decimal('50.00'))
        plain = TestDataFactory.create_variant(product)
        priced = TestDataFactory.create_variant(product, price=Decimal('65.00'))
        self.assertEqual(plain.get_price(), Decimal('50.00'))
        self.assertEqual(priced.get_price(), Decimal('65.00'))


@override_settings(CURRENCY_SYMBOL='$')
class ProductMessageTests(TestCase):

    def setUp(self):
        workspace = TestDataFactory.create_workspace()
        self.product = TestDataFactory.create_product(
            workspace, name='Sneaker', sku='SNK-1', price=Decimal('120.00'), stock=8, description='Running shoe'
        )

    def test_product_message(self):
        message = format_product_message(self.product)
        self.assertTrue(message.startswith('*Sneaker*'))
        self.assertIn('Running shoe', message)
        self.assertIn('*Price:* $120.00', message)
        self.assertIn('*Available stock:* 8 units', message)
        self.assertIn('*SKU:* SNK-1', message)
        self.assertTrue(message.endswith('Would you like to place an order?'))

    def test_variant_message(self):
        red = TestDataFactory.create_variant(self.product, name='Red 42', price=Decimal('130.00'), stock=2)
        TestDataFactory.create_variant(self.product, name='Blue 42')
        message = format_product_message(self.product, red)
        self.assertIn('*Sneaker - Red 42*', message)
        self.assertIn('*Price:* $130.00', message)
        self.assertIn('*Available stock:* 2 units', message)
        self.assertIn('_Other variants available: 1_', message)


class ProductAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_product_with_variants(self):
        category = TestDataFactory.create_category(self.workspace)
        response = self.client.post('/api/v1/products/', {
            'workspace_id': self.workspace.id,
            'name': 'T-Shirt',
            'price': '25.00',
            'stock': 10,
            'category_id': category.id,
            'variants': [{'name': 'Small', 'stock': 4}, {'name': 'Large', 'price': '27.50', 'stock': 6}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category_name'], category.name)
        self.assertEqual(len(response.data['variants']), 2)
        effective = {v['name']: v['effective_price'] for v in response.data['variants']}
        self.assertEqual(effective['Small'], '25.00')
        self.assertEqual(effective['Large'], '27.50')

    def test_create_rejects_negative_price(self):
        response = self.client.post('/api/v1/products/', {
            'workspace_id': self.workspace.id, 'name': 'Broken', 'price': '-1.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_rejects_foreign_category(self):
        foreign = TestDataFactory.create_category(TestDataFactory.create_workspace())
        response = self.client.post('/api/v1/products/', {
            'workspace_id': self.workspace.id, 'name': 'Cap', 'price': '10.00', 'category_id': foreign.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_filters(self):
        TestDataFactory.create_product(self.workspace, name='Low One', stock=1)
        TestDataFactory.create_product(self.workspace, name='Plenty', stock=100)
        TestDataFactory.create_product(self.workspace, name='Hidden', stock=100, is_active=False)

        response = self.client.get(f'/api/v1/products/?workspace_id={self.workspace.id}&low_stock=true')
        self.assertEqual([p['name'] for p in response.data], ['Low One'])
        response = self.client.get(f'/api/v1/products/?workspace_id={self.workspace.id}&is_active=true&search=plen')
        self.assertEqual([p['name'] for p in response.data], ['Plenty'])

    def test_stock_edit_goes_through_ledger(self):
        product = TestDataFactory.create_product(self.workspace, stock=10)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'stock': 4}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock'], 4)
        movement = StockMovement.objects.get(product=product)
        self.assertEqual(movement.movement_type, 'adjustment')
        self.assertEqual(movement.quantity, 6)
        self.assertEqual(movement.previous_stock, 10)

    def test_update_variants_replaces_missing(self):
        product = TestDataFactory.create_product(self.workspace)
        keep = TestDataFactory.create_variant(product, name='Keep')
        drop = TestDataFactory.create_variant(product, name='Drop')
        response = self.client.patch(f'/api/v1/products/{product.id}/', {
            'variants': [{'id': keep.id, 'name': 'Kept'}, {'name': 'New'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = set(ProductVariant.objects.filter(product=product).values_list('name', flat=True))
        self.assertEqual(names, {'Kept', 'New'})
        self.assertFalse(ProductVariant.objects.filter(pk=drop.id).exists())

    def test_detail_forbidden_for_other_workspace(self):
        product = TestDataFactory.create_product(TestDataFactory.create_workspace())
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_product(self):
        product = TestDataFactory.create_product(self.workspace)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())

    def test_format_message_endpoint(self):
        product = TestDataFactory.create_product(self.workspace, name='Mug', image_url='https://cdn.test/mug.png')
        response = self.client.post('/api/v1/products/format-message/', {'product_id': product.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('*Mug*', response.data['message'])
        self.assertEqual(response.data['image_url'], 'https://cdn.test/mug.png')

    def test_format_message_unknown_variant(self):
        product = TestDataFactory.create_product(self.workspace)
        other = TestDataFactory.create_variant(TestDataFactory.create_product(self.workspace))
        response = self.client.post('/api/v1/products/format-message/', {
            'product_id': product.id, 'variant_id': other.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CategoryAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_and_list(self):
        response = self.client.post('/api/v1/categories/', {
            'workspace_id': self.workspace.id, 'name': 'Shoes',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        TestDataFactory.create_category(TestDataFactory.create_workspace(), name='Elsewhere')
        response = self.client.get(f'/api/v1/categories/?workspace_id={self.workspace.id}')
        self.assertEqual([c['name'] for c in response.data], ['Shoes'])
