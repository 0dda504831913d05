"""
Thin client for the Chatwoot application API.

Configuration comes from CHATWOOT_API_URL, CHATWOOT_APP_ACCESS_TOKEN and
CHATWOOT_ACCOUNT_ID. Every failed call raises ChatwootError carrying the
upstream status code and body.
"""
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class ChatwootError(Exception):
    def __init__(self, message, status_code=502, payload=None):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


def normalize_api_url(url):
    """Strip trailing slashes and make sure the URL ends in /api/v1"""
    normalized = (url or '').strip().rstrip('/')
    if '/api/v1' not in normalized:
        normalized = f"{normalized}/api/v1"
    return normalized


def extract_payload(data):
    """Chatwoot nests list results differently per endpoint"""
    if isinstance(data, dict):
        inner = data.get('data')
        if isinstance(inner, dict) and 'payload' in inner:
            return inner['payload']
        if 'payload' in data:
            return data['payload']
    return data


class ChatwootClient:
    def __init__(self, api_url=None, access_token=None, account_id=None, timeout=None, session=None):
        self.api_url = api_url if api_url is not None else settings.CHATWOOT_API_URL
        self.access_token = access_token if access_token is not None else settings.CHATWOOT_APP_ACCESS_TOKEN
        self.account_id = account_id if account_id is not None else settings.CHATWOOT_ACCOUNT_ID
        self.timeout = timeout or settings.CHATWOOT_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({'api_access_token': self.access_token or ''})

    @property
    def is_configured(self):
        return bool(self.api_url and self.access_token)

    @property
    def base_url(self):
        return normalize_api_url(self.api_url)

    def account_url(self, account_id, path=''):
        account_id = account_id or self.account_id
        return f"{self.base_url}/accounts/{account_id}/{path.lstrip('/')}".rstrip('/')

    def request(self, method, url, **kwargs):
        if not self.is_configured:
            raise ChatwootError('Server configuration error: Missing API credentials', status_code=500)
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Chatwoot {method} {url} failed: {str(e)}")
            raise ChatwootError(f"Chat provider unreachable: {str(e)}", status_code=502)

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {'message': response.text}
            logger.warning(f"Chatwoot {method} {url} returned {response.status_code}")
            raise ChatwootError('Chat provider request failed', status_code=response.status_code, payload=payload)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    # Inboxes
    def list_inboxes(self, account_id=None):
        payload = extract_payload(self.request('GET', self.account_url(account_id, 'inboxes')))
        return payload if isinstance(payload, list) else []

    # Conversations
    def list_conversations(self, account_id=None, status='open', page=1, inbox_id=None):
        """Returns (conversations, meta)"""
        params = {'status': status, 'page': page}
        if inbox_id:
            params['inbox_id'] = inbox_id
        data = self.request('GET', self.account_url(account_id, 'conversations'), params=params)
        payload = extract_payload(data)
        meta = {}
        if isinstance(data, dict):
            inner = data.get('data')
            meta = (inner.get('meta') if isinstance(inner, dict) else None) or data.get('meta') or {}
        return (payload if isinstance(payload, list) else []), meta

    def get_conversation(self, conversation_id, account_id=None):
        return self.request('GET', self.account_url(account_id, f'conversations/{conversation_id}'))

    def create_conversation(self, inbox_id, contact_id, account_id=None, source_id=None, message=None):
        body = {'inbox_id': inbox_id, 'contact_id': contact_id}
        if source_id:
            body['source_id'] = source_id
        if message:
            body['message'] = {'content': message}
        return self.request('POST', self.account_url(account_id, 'conversations'), json=body)

    def mark_read(self, conversation_id, account_id=None):
        return self.request('POST', self.account_url(account_id, f'conversations/{conversation_id}/update_last_seen'))

    # Messages
    def list_messages(self, conversation_id, account_id=None, before=None):
        params = {'before': before} if before else None
        data = self.request('GET', self.account_url(account_id, f'conversations/{conversation_id}/messages'), params=params)
        payload = extract_payload(data)
        return payload if isinstance(payload, list) else []

    def send_message(self, conversation_id, content=None, account_id=None, message_type='outgoing',
                     private=False, attachments=None):
        """
        Post a message. attachments is a list of (filename, fileobj, content_type)
        tuples and switches the request to multipart.
        """
        url = self.account_url(account_id, f'conversations/{conversation_id}/messages')
        if attachments:
            data = {'message_type': message_type, 'private': 'true' if private else 'false'}
            if content:
                data['content'] = content
            files = [('attachments[]', attachment) for attachment in attachments]
            return self.request('POST', url, data=data, files=files)
        return self.request('POST', url, json={
            'content': content,
            'message_type': message_type,
            'private': private,
        })

    # Contacts
    def search_contacts(self, query, account_id=None):
        data = self.request('GET', self.account_url(account_id, 'contacts/search'), params={'q': query})
        payload = extract_payload(data)
        return payload if isinstance(payload, list) else []

    def create_contact(self, inbox_id, name, phone_number=None, email=None, account_id=None):
        body = {'inbox_id': inbox_id, 'name': name}
        if phone_number:
            body['phone_number'] = phone_number
        if email:
            body['email'] = email
        data = self.request('POST', self.account_url(account_id, 'contacts'), json=body)
        payload = extract_payload(data)
        return payload.get('contact', payload) if isinstance(payload, dict) else payload

    def list_contact_conversations(self, contact_id, account_id=None):
        data = self.request('GET', self.account_url(account_id, f'contacts/{contact_id}/conversations'))
        payload = extract_payload(data)
        return payload if isinstance(payload, list) else []
