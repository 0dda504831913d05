"""
Tests for the stock movement ledger
"""
from django.test import TestCase
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.core.models import AuditLog
from crm.inventory.models import StockMovement
from crm.inventory.services import InsufficientStock, StockError, apply_stock_movement


class StockMovementServiceTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.product = TestDataFactory.create_product(self.workspace, stock=10)

    def test_stock_in(self):
        movement = apply_stock_movement(self.product, 'in', 5, user=self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 15)
        self.assertEqual((movement.previous_stock, movement.new_stock, movement.quantity), (10, 15, 5))
        self.assertEqual(movement.workspace, self.workspace)

    def test_stock_out(self):
        apply_stock_movement(self.product, 'out', '4', user=self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 6)

    def test_stock_out_insufficient(self):
        with self.assertRaises(InsufficientStock) as ctx:
            apply_stock_movement(self.product, 'out', 11)
        self.assertEqual(ctx.exception.available, 10)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_stock_out_allow_negative(self):
        apply_stock_movement(self.product, 'out', 12, allow_negative=True)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, -2)

    def test_adjustment_sets_absolute_value(self):
        movement = apply_stock_movement(self.product, 'adjustment', 3)
        self.assertEqual(movement.new_stock, 3)
        self.assertEqual(movement.quantity, 7)

    def test_adjustment_to_zero(self):
        movement = apply_stock_movement(self.product, 'adjustment', 0)
        self.assertEqual(movement.new_stock, 0)

    def test_invalid_requests(self):
        with self.assertRaises(StockError):
            apply_stock_movement(self.product, 'teleport', 1)
        with self.assertRaises(StockError):
            apply_stock_movement(self.product, 'in', 0)
        with self.assertRaises(StockError):
            apply_stock_movement(self.product, 'in', 'many')
        with self.assertRaises(StockError):
            apply_stock_movement(self.product, 'adjustment', -1)

    def test_variant_stock_is_separate(self):
        variant = TestDataFactory.create_variant(self.product, stock=2)
        movement = apply_stock_movement(self.product, 'in', 3, variant=variant)
        variant.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(variant.stock, 5)
        self.assertEqual(self.product.stock, 10)
        self.assertEqual(movement.variant, variant)


class StockAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.product = TestDataFactory.create_product(self.workspace, stock=10)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_register_movement(self):
        response = self.client.post('/api/v1/stock/', {
            'workspace_id': self.workspace.id,
            'product_id': self.product.id,
            'movement_type': 'in',
            'quantity': 5,
            'reason': 'Supplier delivery',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['new_stock'], 15)
        self.assertTrue(AuditLog.objects.filter(action='stock_in', object_id=str(self.product.id)).exists())

    def test_insufficient_stock_response(self):
        response = self.client.post('/api/v1/stock/', {
            'workspace_id': self.workspace.id,
            'product_id': self.product.id,
            'movement_type': 'out',
            'quantity': 50,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'Insufficient stock', 'available': 10})

    def test_missing_fields(self):
        response = self.client.post('/api/v1/stock/', {
            'workspace_id': self.workspace.id, 'product_id': self.product.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_product_from_other_workspace(self):
        foreign = TestDataFactory.create_product(TestDataFactory.create_workspace())
        response = self.client.post('/api/v1/stock/', {
            'workspace_id': self.workspace.id,
            'product_id': foreign.id,
            'movement_type': 'in',
            'quantity': 1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_movements(self):
        apply_stock_movement(self.product, 'in', 1)
        apply_stock_movement(self.product, 'out', 2)
        response = self.client.get(
            f'/api/v1/stock/?workspace_id={self.workspace.id}&movement_type=out'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['movement_type'], 'out')

    def test_stock_products_sorted_by_stock(self):
        TestDataFactory.create_product(self.workspace, name='Empty', stock=0)
        response = self.client.get(f'/api/v1/stock/products/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Empty')
