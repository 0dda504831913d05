"""
Tests for customers, tags, notes, custom attributes and the customer timeline
"""
from django.test import TestCase
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.parties.models import Customer, CustomerActivity, CustomerNote, CustomerAttribute, CustomerAttributeDefinition


class CustomerAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def customer_payload(self, **overrides):
        data = {
            'workspace_id': self.workspace.id,
            'name': 'Ana Torres',
            'identity_document_type': 'dni',
            'identity_document_number': '45678912',
            'email': 'ana@test.com',
            'phone': '987654321',
        }
        data.update(overrides)
        return data

    def test_create_customer_records_activity(self):
        response = self.client.post('/api/v1/customers/', self.customer_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['stage'], 'prospect')
        customer = Customer.objects.get(pk=response.data['id'])
        self.assertEqual(customer.workspace, self.workspace)
        self.assertEqual(customer.created_by, self.user)
        self.assertTrue(CustomerActivity.objects.filter(customer=customer, activity_type='created').exists())

    def test_create_requires_workspace(self):
        data = self.customer_payload()
        del data['workspace_id']
        response = self.client.post('/api/v1/customers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Workspace ID required')

    def test_create_with_tags(self):
        tag = TestDataFactory.create_tag(self.workspace, name='VIP')
        response = self.client.post('/api/v1/customers/', self.customer_payload(tag_ids=[tag.id]), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([t['name'] for t in response.data['tags']], ['VIP'])

    def test_create_rejects_foreign_tag(self):
        foreign_tag = TestDataFactory.create_tag(TestDataFactory.create_workspace())
        response = self.client.post('/api/v1/customers/', self.customer_payload(tag_ids=[foreign_tag.id]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('tag_ids', response.data)

    def test_list_is_scoped_to_workspace(self):
        TestDataFactory.create_customer(self.workspace, name='Mine')
        TestDataFactory.create_customer(TestDataFactory.create_workspace(), name='Theirs')
        response = self.client.get(f'/api/v1/customers/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data], ['Mine'])

    def test_list_search_and_tag_filter(self):
        tag = TestDataFactory.create_tag(self.workspace)
        tagged = TestDataFactory.create_customer(self.workspace, name='Luis Tagged')
        tagged.tags.add(tag)
        TestDataFactory.create_customer(self.workspace, name='Maria Plain')

        response = self.client.get(f'/api/v1/customers/?workspace_id={self.workspace.id}&search=maria')
        self.assertEqual([c['name'] for c in response.data], ['Maria Plain'])
        response = self.client.get(f'/api/v1/customers/?workspace_id={self.workspace.id}&tag_id={tag.id}')
        self.assertEqual([c['name'] for c in response.data], ['Luis Tagged'])

    def test_detail_forbidden_for_other_workspace(self):
        customer = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        response = self.client.get(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_stage_change_is_tracked(self):
        customer = TestDataFactory.create_customer(self.workspace)
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'stage': 'lead'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        activity = CustomerActivity.objects.get(customer=customer, activity_type='stage_changed')
        self.assertEqual(activity.metadata, {'from': 'prospect', 'to': 'lead'})

    def test_labels_must_be_strings(self):
        customer = TestDataFactory.create_customer(self.workspace)
        response = self.client.patch(f'/api/v1/customers/{customer.id}/', {'labels': [1, 2]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_customer(self):
        customer = TestDataFactory.create_customer(self.workspace)
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Customer.objects.filter(pk=customer.id).exists())


class TagAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_duplicate_tag_name(self):
        TestDataFactory.create_tag(self.workspace, name='VIP')
        response = self.client.post('/api/v1/tags/', {'workspace_id': self.workspace.id, 'name': 'vip'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_same_name_in_other_workspace(self):
        TestDataFactory.create_tag(TestDataFactory.create_workspace(), name='VIP')
        response = self.client.post('/api/v1/tags/', {'workspace_id': self.workspace.id, 'name': 'VIP'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)


class CustomerNoteTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_add_note(self):
        response = self.client.post('/api/v1/customer-notes/', {
            'customer': self.customer.id, 'content': 'Prefers delivery after 6pm',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(CustomerActivity.objects.filter(customer=self.customer, activity_type='note_added').exists())

        response = self.client.get(f'/api/v1/customer-activities/?customer_id={self.customer.id}&type=note_added')
        self.assertEqual(len(response.data), 1)

    def test_only_author_deletes_note(self):
        other = TestDataFactory.create_member(self.workspace)
        note = CustomerNote.objects.create(customer=self.customer, user=other, content='Hidden')
        response = self.client.delete(f'/api/v1/customer-notes/{note.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_notes_require_customer(self):
        response = self.client.get('/api/v1/customer-notes/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CustomerAttributeDefinitionTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)
        self.url = '/api/v1/customer-attribute-definitions/'

    def test_create_uses_name_as_label(self):
        response = self.client.post(self.url, {
            'workspace_id': self.workspace.id, 'name': 'company', 'type': 'text',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['label'], 'company')

        response = self.client.post(self.url, {
            'workspace_id': self.workspace.id, 'name': 'company', 'type': 'text',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_members_read_admins_write(self):
        definition = CustomerAttributeDefinition.objects.create(
            workspace=self.workspace, name='segment', label='Segment', field_type='select', options=['retail', 'b2b'],
        )
        member = TestDataFactory.create_member(self.workspace)
        self.client.authenticate_user(member)
        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}')
        self.assertEqual([d['name'] for d in response.data], ['segment'])
        response = self.client.post(self.url, {'workspace_id': self.workspace.id, 'name': 'x', 'type': 'text'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.patch(f'{self.url}{definition.id}/', {'label': 'Kind'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.owner)
        response = self.client.patch(f'{self.url}{definition.id}/', {'label': 'Kind', 'options': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(f'{self.url}{definition.id}/', {'label': 'Kind'}, format='json')
        self.assertEqual(response.data['label'], 'Kind')
        response = self.client.delete(f'{self.url}{definition.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(CustomerAttributeDefinition.objects.exists())


class CustomerAttributeTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)
        self.url = '/api/v1/customer-attributes/'

    def add(self, name, value, customer=None):
        return self.client.post(self.url, {
            'workspace_id': self.workspace.id, 'customer_id': (customer or self.customer).id,
            'attribute_name': name, 'attribute_value': value,
        }, format='json')

    def test_create_and_list(self):
        self.assertEqual(self.add('size', 'M').status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.add('company', 'Acme').status_code, status.HTTP_201_CREATED)
        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}&customer_id={self.customer.id}')
        self.assertEqual([a['attribute_name'] for a in response.data], ['company', 'size'])

        response = self.add('size', 'L')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_value_checked_against_definition(self):
        CustomerAttributeDefinition.objects.create(
            workspace=self.workspace, name='employees', label='Employees', field_type='number',
        )
        response = self.add('employees', 'many')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Employees must be a number')
        self.assertEqual(self.add('employees', 25).status_code, status.HTTP_201_CREATED)

    def test_required_fields_and_foreign_customer(self):
        response = self.client.post(self.url, {
            'workspace_id': self.workspace.id, 'customer_id': self.customer.id, 'attribute_name': 'size',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        foreign = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        response = self.add('size', 'M', customer=foreign)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_and_delete(self):
        first = self.add('size', 'M').data['id']
        self.add('company', 'Acme')
        response = self.client.put(self.url, {'id': first, 'attribute_name': 'size', 'attribute_value': 'XL'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(CustomerAttribute.objects.get(pk=first).attribute_value, 'XL')

        response = self.client.put(self.url, {'id': first, 'attribute_name': 'company', 'attribute_value': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        outsider = TestDataFactory.create_user()
        self.client.authenticate_user(outsider)
        response = self.client.delete(f'{self.url}?id={first}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.owner)
        response = self.client.delete(f'{self.url}?id={first}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(CustomerAttribute.objects.filter(customer=self.customer).count(), 1)
        response = self.client.delete(f'{self.url}?id={first}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
