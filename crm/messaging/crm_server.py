"""Client for the external CRM server that runs the scheduled message queue"""
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class CRMServerError(Exception):
    def __init__(self, message, status_code=503, payload=None):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class CRMServerClient:
    def __init__(self, base_url=None, timeout=None):
        self.base_url = (base_url or settings.CRM_SERVER_URL).rstrip('/')
        self.timeout = timeout or settings.CRM_SERVER_TIMEOUT

    def _request(self, method, path, failure_message):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method, url, headers={'Content-Type': 'application/json'}, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not connect to CRM server at {self.base_url}: {str(e)}")
            raise CRMServerError('Could not connect to CRM server', status_code=503, payload={'message': str(e)})

        if not response.ok:
            logger.warning(f"CRM server {method} {path} returned {response.status_code}")
            raise CRMServerError(failure_message, status_code=response.status_code, payload={'message': response.text})
        try:
            return response.json()
        except ValueError:
            return {}

    def get_stats(self):
        return self._request('GET', '/scheduled-messages/stats', 'Failed to fetch stats from CRM server')

    def trigger_poll(self):
        return self._request('POST', '/scheduled-messages/trigger-poll', 'Failed to trigger poll on CRM server')
