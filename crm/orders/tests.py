"""
Test suite for orders and payments
Tests: document numbering, stock reservation, status changes, cancellation and module permissions
"""
from datetime import date
from decimal import Decimal
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.core.models import AuditLog
from crm.inventory.models import StockMovement
from crm.orders.models import Order, OrderStatusHistory, DocumentSequence, Payment, OrderFieldDefinition
from crm.orders.numbering import ORDER_PREFIX, PAYMENT_PREFIX, format_document_number, next_document_number
from crm.orders.serializers import OrderSerializer
from crm.orders.services import OrderError, create_order, change_order_status, cancel_order, create_payment, update_order
from crm.parties.models import CustomerActivity
from crm.roles.models import RoleModule
from crm.workspaces.models import AgentProfile


class DocumentNumberTests(TestCase):

    def setUp(self):
        self.workspace = TestDataFactory.create_workspace()

    def test_format(self):
        day = date(2024, 1, 31)
        self.assertEqual(format_document_number(ORDER_PREFIX, day, 7), 'ORD-20240131-007')
        self.assertEqual(format_document_number(PAYMENT_PREFIX, day, 12), 'PAY-20240131-0012')

    def test_sequential_numbers(self):
        day = date(2024, 3, 1)
        numbers = [next_document_number(self.workspace, ORDER_PREFIX, day) for _ in range(3)]
        self.assertEqual(numbers, ['ORD-20240301-001', 'ORD-20240301-002', 'ORD-20240301-003'])
        self.assertEqual(DocumentSequence.objects.get(workspace=self.workspace, prefix='ORD', date=day).last_value, 3)

    def test_counter_restarts_each_day(self):
        next_document_number(self.workspace, ORDER_PREFIX, date(2024, 3, 1))
        self.assertEqual(next_document_number(self.workspace, ORDER_PREFIX, date(2024, 3, 2)), 'ORD-20240302-001')

    def test_counters_are_per_workspace_and_prefix(self):
        day = date(2024, 3, 1)
        other = TestDataFactory.create_workspace()
        next_document_number(self.workspace, ORDER_PREFIX, day)
        self.assertEqual(next_document_number(other, ORDER_PREFIX, day), 'ORD-20240301-001')
        self.assertEqual(next_document_number(self.workspace, PAYMENT_PREFIX, day), 'PAY-20240301-0001')


class OrderServiceTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.product = TestDataFactory.create_product(self.workspace, price=Decimal('20.00'), stock=10)

    def test_create_order_takes_stock(self):
        order = create_order(self.workspace, self.user, {
            'customer_id': self.customer.id,
            'items': [{'product_id': self.product.id, 'quantity': 3}],
        })
        self.assertTrue(order.order_number.startswith(f"ORD-{timezone.localdate():%Y%m%d}-"))
        self.assertEqual(order.total_amount, Decimal('60.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 7)
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual(movement.reference, order.order_number)
        self.assertEqual(OrderStatusHistory.objects.filter(order=order).count(), 1)
        self.assertTrue(CustomerActivity.objects.filter(customer=self.customer, activity_type='order_created').exists())

    def test_line_discount_tax_and_order_discount(self):
        order = create_order(self.workspace, self.user, {
            'items': [{
                'product_id': self.product.id, 'quantity': 2, 'unit_price': Decimal('15.00'),
                'discount': Decimal('5.00'), 'tax': Decimal('1.00'),
            }],
            'discount_amount': Decimal('2.00'),
            'tax_amount': Decimal('0.50'),
        })
        item = order.items.get()
        self.assertEqual(item.subtotal, Decimal('30.00'))
        self.assertEqual(item.total, Decimal('26.00'))
        self.assertEqual(order.subtotal, Decimal('30.00'))
        self.assertEqual(order.discount_amount, Decimal('7.00'))
        self.assertEqual(order.tax_amount, Decimal('1.50'))
        self.assertEqual(order.total_amount, Decimal('24.50'))

    def test_order_amounts_sum_the_lines(self):
        order = create_order(self.workspace, self.user, {
            'items': [
                {'product_id': self.product.id, 'quantity': 2, 'unit_price': Decimal('10.00'),
                 'discount': Decimal('5.00'), 'tax': Decimal('1.00')},
                {'product_id': self.product.id, 'quantity': 1, 'unit_price': Decimal('4.00')},
            ],
        })
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('24.00'))
        self.assertEqual(order.discount_amount, Decimal('5.00'))
        self.assertEqual(order.tax_amount, Decimal('1.00'))
        self.assertEqual(order.total_amount, Decimal('20.00'))

    def test_variant_price_and_stock(self):
        variant = TestDataFactory.create_variant(self.product, name='XL', price=Decimal('25.00'), stock=4)
        order = create_order(self.workspace, self.user, {
            'items': [{'product_id': self.product.id, 'variant_id': variant.id, 'quantity': 4}],
        })
        item = order.items.get()
        self.assertEqual(item.unit_price, Decimal('25.00'))
        self.assertEqual(item.variant_name, 'XL')
        variant.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(variant.stock, 0)
        self.assertEqual(self.product.stock, 10)

    def test_insufficient_stock_rolls_back(self):
        with self.assertRaises(OrderError) as ctx:
            create_order(self.workspace, self.user, {
                'items': [
                    {'product_id': self.product.id, 'quantity': 6},
                    {'product_id': self.product.id, 'quantity': 6},
                ],
            })
        self.assertIn('Insufficient stock', ctx.exception.message)
        self.assertFalse(Order.objects.exists())
        self.assertFalse(DocumentSequence.objects.exists())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_orders_without_stock_allowed(self):
        self.workspace.allow_orders_without_stock = True
        self.workspace.save()
        create_order(self.workspace, self.user, {'items': [{'product_id': self.product.id, 'quantity': 12}]})
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, -2)

    def test_empty_order(self):
        with self.assertRaisesMessage(OrderError, 'Order must contain at least one item'):
            create_order(self.workspace, self.user, {'items': []})

    def test_foreign_product(self):
        foreign = TestDataFactory.create_product(TestDataFactory.create_workspace(), stock=5)
        with self.assertRaises(OrderError) as ctx:
            create_order(self.workspace, self.user, {'items': [{'product_id': foreign.id, 'quantity': 1}]})
        self.assertEqual(ctx.exception.status_code, 404)

    def test_foreign_customer(self):
        foreign = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        with self.assertRaises(OrderError) as ctx:
            create_order(self.workspace, self.user, {
                'customer_id': foreign.id, 'items': [{'product_id': self.product.id, 'quantity': 1}],
            })
        self.assertEqual(ctx.exception.message, 'Customer not found')

    def test_cancel_restores_stock(self):
        order = create_order(self.workspace, self.user, {'items': [{'product_id': self.product.id, 'quantity': 4}]})
        cancel_order(order, user=self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        order.refresh_from_db()
        self.assertEqual(order.status, 'cancelled')
        with self.assertRaisesMessage(OrderError, 'Order is already cancelled'):
            cancel_order(order)

    def test_completed_is_final(self):
        order = create_order(self.workspace, self.user, {'items': [{'product_id': self.product.id, 'quantity': 1}]})
        change_order_status(order, 'completed', user=self.user)
        with self.assertRaises(OrderError):
            change_order_status(order, 'processing', user=self.user)
        with self.assertRaisesMessage(OrderError, 'Cannot cancel a completed order'):
            cancel_order(order)

    def test_unknown_status(self):
        order = TestDataFactory.create_order(self.workspace)
        with self.assertRaises(OrderError):
            change_order_status(order, 'shipped')

    def test_agent_name_fallbacks(self):
        order = TestDataFactory.create_order(self.workspace)
        self.assertEqual(OrderSerializer(order).data['agent_name'], 'User')
        order.created_by_name = 'Legacy Agent'
        self.assertEqual(OrderSerializer(order).data['agent_name'], 'Legacy Agent')
        AgentProfile.objects.create(user=self.user, display_name='Ana Agent')
        order.user = self.user
        self.assertEqual(OrderSerializer(order).data['agent_name'], 'Ana Agent')

    def test_payment_defaults_to_order_customer(self):
        order = TestDataFactory.create_order(self.workspace, customer=self.customer)
        payment = create_payment(
            self.workspace, self.user, {'amount': Decimal('50.00'), 'payment_method': 'cash'}, order=order
        )
        self.assertEqual(payment.customer, self.customer)
        self.assertTrue(payment.payment_number.startswith('PAY-'))


class OrderAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.product = TestDataFactory.create_product(self.workspace, price=Decimal('10.00'), stock=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_create_order(self):
        response = self.client.post('/api/v1/orders/', {
            'workspace_id': self.workspace.id,
            'items': [{'product_id': self.product.id, 'quantity': 2}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], '20.00')
        self.assertEqual(len(response.data['items']), 1)
        self.assertTrue(AuditLog.objects.filter(action='order_create', object_reference=response.data['order_number']).exists())

    def test_create_order_insufficient_stock(self):
        response = self.client.post('/api/v1/orders/', {
            'workspace_id': self.workspace.id,
            'items': [{'product_id': self.product.id, 'quantity': 6}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Insufficient stock', response.data['error'])

    def test_create_order_rejects_zero_quantity(self):
        response = self.client.post('/api/v1/orders/', {
            'workspace_id': self.workspace.id,
            'items': [{'product_id': self.product.id, 'quantity': 0}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_agent_needs_orders_module(self):
        agent = TestDataFactory.create_member(self.workspace)
        self.client.authenticate_user(agent)
        response = self.client.get(f'/api/v1/orders/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'You do not have permission to access orders')

        role = TestDataFactory.create_role(workspace=self.workspace, user=agent)
        RoleModule.objects.create(role=role, module_slug='orders', is_active=True)
        response = self.client.get(f'/api/v1/orders/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_list_pagination_and_filters(self):
        for index in range(12):
            TestDataFactory.create_order(self.workspace, order_number=f'ORD-X-{index:03d}')
        TestDataFactory.create_order(self.workspace, order_number='ORD-DONE', status='completed')
        response = self.client.get(f'/api/v1/orders/?workspace_id={self.workspace.id}&status=pending')
        self.assertEqual(response.data['total'], 12)
        self.assertEqual(len(response.data['orders']), 10)
        self.assertEqual(response.data['total_pages'], 2)

        response = self.client.get(f'/api/v1/orders/?workspace_id={self.workspace.id}&page=2&status=pending')
        self.assertEqual(len(response.data['orders']), 2)

        response = self.client.get(f'/api/v1/orders/?workspace_id={self.workspace.id}&search=DONE')
        self.assertEqual([o['order_number'] for o in response.data['orders']], ['ORD-DONE'])

    def test_list_filters_are_validated(self):
        customer = TestDataFactory.create_customer(self.workspace)
        order = TestDataFactory.create_order(self.workspace, customer=customer)
        base = f'/api/v1/orders/?workspace_id={self.workspace.id}'
        for query in ('customer_id=abc', 'agent_id=1.5', 'date_from=yesterday', 'date_to=2024-02-30'):
            response = self.client.get(f'{base}&{query}')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, query)

        today = timezone.localdate().isoformat()
        response = self.client.get(f'{base}&customer_id={customer.id}&date_from={today}&date_to={today}')
        self.assertEqual([o['id'] for o in response.data['orders']], [order.id])

    def test_status_change_and_history(self):
        order = create_order(self.workspace, self.owner, {'items': [{'product_id': self.product.id, 'quantity': 1}]})
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'status': 'processing'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'processing')
        self.assertTrue(AuditLog.objects.filter(action='order_status', object_id=str(order.id)).exists())

        response = self.client.get(f'/api/v1/orders/{order.id}/history/')
        self.assertEqual([h['to_status'] for h in response.data], ['pending', 'processing'])

    def test_delete_cancels_order(self):
        order = create_order(self.workspace, self.owner, {'items': [{'product_id': self.product.id, 'quantity': 2}]})
        response = self.client.delete(f'/api/v1/orders/{order.id}/?reason=Customer%20changed%20mind')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 5)
        self.assertTrue(Order.objects.filter(pk=order.id).exists())

    def test_order_of_other_workspace(self):
        order = TestDataFactory.create_order(TestDataFactory.create_workspace())
        response = self.client.get(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PaymentAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.order = TestDataFactory.create_order(self.workspace, customer=self.customer)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_register_payment(self):
        response = self.client.post('/api/v1/payments/', {
            'workspace_id': self.workspace.id,
            'order_id': self.order.id,
            'amount': '40.00',
            'payment_method': 'transfer',
            'reference_number': 'OP-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order_number'], self.order.order_number)
        self.assertEqual(response.data['customer'], self.customer.id)
        self.assertTrue(AuditLog.objects.filter(action='payment_add').exists())

    def test_payment_amount_must_be_positive(self):
        response = self.client.post('/api/v1/payments/', {
            'workspace_id': self.workspace.id, 'amount': '0', 'payment_method': 'cash',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_payment_for_foreign_order(self):
        foreign = TestDataFactory.create_order(TestDataFactory.create_workspace())
        response = self.client.post('/api/v1/payments/', {
            'workspace_id': self.workspace.id, 'order_id': foreign.id, 'amount': '5.00', 'payment_method': 'cash',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_and_filter(self):
        create_payment(self.workspace, self.owner, {'amount': Decimal('10.00'), 'payment_method': 'cash'})
        create_payment(self.workspace, self.owner, {'amount': Decimal('20.00'), 'payment_method': 'card'})
        response = self.client.get(f'/api/v1/payments/?workspace_id={self.workspace.id}&payment_method=card')
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['payments'][0]['amount'], '20.00')

        response = self.client.get(f'/api/v1/payments/?workspace_id={self.workspace.id}&order_id=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_delete(self):
        payment = create_payment(self.workspace, self.owner, {'amount': Decimal('10.00'), 'payment_method': 'cash'})
        response = self.client.patch(f'/api/v1/payments/{payment.id}/', {'status': 'refunded'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(AuditLog.objects.filter(action='payment_update').exists())

        response = self.client.delete(f'/api/v1/payments/{payment.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Payment.objects.filter(pk=payment.id).exists())


class OrderFieldDefinitionTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.product = TestDataFactory.create_product(self.workspace, price=Decimal('10.00'), stock=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def define(self, name, field_type='text', **extra):
        return OrderFieldDefinition.objects.create(
            workspace=self.workspace, name=name, label=name.replace('_', ' ').title(), field_type=field_type, **extra
        )

    def order_data(self, custom_fields):
        return {'items': [{'product_id': self.product.id, 'quantity': 1}], 'custom_fields': custom_fields}

    def test_create_definition(self):
        response = self.client.post('/api/v1/order-field-definitions/', {
            'workspace_id': self.workspace.id, 'name': 'delivery_slot', 'label': 'Delivery slot',
            'type': 'select', 'options': ['morning', 'evening'], 'order_position': 2,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['type'], 'select')
        self.assertEqual(response.data['workspace'], self.workspace.id)

        response = self.client.post('/api/v1/order-field-definitions/', {
            'workspace_id': self.workspace.id, 'name': 'delivery_slot', 'label': 'Again', 'type': 'text',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_definition_validation(self):
        base = {'workspace_id': self.workspace.id, 'name': 'size', 'label': 'Size'}
        response = self.client.post('/api/v1/order-field-definitions/', {**base, 'type': 'select'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('options', response.data)
        response = self.client.post('/api/v1/order-field-definitions/', {**base, 'type': 'color'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_update_and_delete(self):
        second = self.define('gift_note', order_position=2)
        first = self.define('invoice', field_type='checkbox', order_position=1)
        response = self.client.get(f'/api/v1/order-field-definitions/?workspace_id={self.workspace.id}')
        self.assertEqual([d['name'] for d in response.data], ['invoice', 'gift_note'])

        response = self.client.patch(f'/api/v1/order-field-definitions/{second.id}/', {
            'label': 'Gift message', 'required': True, 'name': 'renamed',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        second.refresh_from_db()
        self.assertEqual((second.label, second.required, second.name), ('Gift message', True, 'gift_note'))

        response = self.client.delete(f'/api/v1/order-field-definitions/{first.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(OrderFieldDefinition.objects.filter(pk=first.id).exists())

    def test_agents_read_but_do_not_manage(self):
        definition = self.define('gift_note')
        agent = TestDataFactory.create_member(self.workspace)
        role = TestDataFactory.create_role(workspace=self.workspace, user=agent)
        RoleModule.objects.create(role=role, module_slug='orders', is_active=True)
        self.client.authenticate_user(agent)

        response = self.client.get(f'/api/v1/order-field-definitions/?workspace_id={self.workspace.id}')
        self.assertEqual(len(response.data), 1)
        response = self.client.delete(f'/api/v1/order-field-definitions/{definition.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_order_custom_fields_follow_definitions(self):
        self.define('delivery_slot', field_type='select', options=['morning', 'evening'], required=True)
        self.define('boxes', field_type='number', default_value='1')
        self.define('gift', field_type='checkbox')

        with self.assertRaises(OrderError) as ctx:
            create_order(self.workspace, self.owner, self.order_data({}))
        self.assertEqual(ctx.exception.message, 'Delivery Slot is required')
        with self.assertRaises(OrderError):
            create_order(self.workspace, self.owner, self.order_data({'delivery_slot': 'night'}))
        with self.assertRaises(OrderError):
            create_order(self.workspace, self.owner, self.order_data({'delivery_slot': 'morning', 'gift': 'yes'}))
        self.assertFalse(Order.objects.exists())

        order = create_order(self.workspace, self.owner, self.order_data({'delivery_slot': 'morning', 'ref': 'A1'}))
        self.assertEqual(order.custom_fields, {'delivery_slot': 'morning', 'boxes': '1', 'ref': 'A1'})

        with self.assertRaises(OrderError):
            update_order(order, {'custom_fields': {'delivery_slot': 'morning', 'boxes': 'many'}})

    def test_create_order_endpoint_rejects_invalid_custom_fields(self):
        self.define('delivery_date', field_type='date')
        response = self.client.post('/api/v1/orders/', {
            'workspace_id': self.workspace.id, **self.order_data({'delivery_date': '31/01/2024'}),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Delivery Date must be a date (YYYY-MM-DD)')
