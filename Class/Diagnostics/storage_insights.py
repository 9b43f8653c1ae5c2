import logging
import sys
import requests
from requests.exceptions import RequestException
sys.path.append('.')
from Class.Diagnostics.resource_ids import resource_name, same_resource
from Class.Report_handler.config_param import Config

logger = logging.getLogger(__name__)


class StorageInsightError(Exception):
    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StorageInsightClient:
    """Reads and writes Microsoft.OperationalInsights storageInsightConfigs through ARM REST."""

    def __init__(self, credential, endpoint=None, api_version=None, timeout=60):
        self.credential = credential
        self.endpoint = (endpoint or Config.resource_manager_endpoint).rstrip('/')
        self.api_version = api_version or Config.storage_insight_api_version
        self.timeout = timeout

    def _headers(self):
        access_token = self.credential.get_token(f"{self.endpoint}/.default").token
        return {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json'
        }

    def _url(self, workspace_id, name=None):
        url = f"{self.endpoint}/{workspace_id.strip('/')}/storageInsightConfigs"
        if name:
            url = f"{url}/{name}"
        return f"{url}?api-version={self.api_version}"

    def _send(self, method, url, action, **kwargs):
        try:
            return getattr(requests, method)(url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except RequestException as e:
            raise StorageInsightError(f"Failed to {action}: {e}") from e

    def list(self, workspace_id):
        insights = []
        url = self._url(workspace_id)
        while url:
            response = self._send('get', url, f"list storage insights of {workspace_id}")
            if response.status_code != 200:
                raise StorageInsightError(
                    f"Failed to list storage insights of {workspace_id}. Status code: {response.status_code}",
                    response.status_code, response.text)
            payload = response.json()
            insights.extend(payload.get('value', []))
            url = payload.get('nextLink')
        logger.debug(f"Found {len(insights)} storage insights in {workspace_id}")
        return insights

    def get(self, workspace_id, name):
        response = self._send('get', self._url(workspace_id, name), f"read storage insight {name}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise StorageInsightError(
                f"Failed to read storage insight {name}. Status code: {response.status_code}",
                response.status_code, response.text)
        return response.json()

    def put(self, workspace_id, name, storage_account_id, key, containers, tables, e_tag=None):
        body = {
            'properties': {
                'containers': list(containers),
                'tables': list(tables),
                'storageAccount': {
                    'id': storage_account_id,
                    'key': key
                }
            }
        }
        if e_tag:
            body['eTag'] = e_tag
        response = self._send('put', self._url(workspace_id, name), f"write storage insight {name}", json=body)
        if response.status_code not in (200, 201):
            raise StorageInsightError(
                f"Failed to write storage insight {name}. Status code: {response.status_code}",
                response.status_code, response.text)
        logger.info(f"Storage insight {name} written to {workspace_id}")
        return response.json() if response.content else {}


def insight_name(storage_account_id):
    return resource_name(storage_account_id)


def find_for_account(insights, storage_account_id):
    for insight in insights:
        account = ((insight.get('properties') or {}).get('storageAccount') or {}).get('id')
        if same_resource(account, storage_account_id):
            return insight
    return None


def _union(existing, wanted):
    merged = {}
    for value in list(existing) + list(wanted):
        # storage names are case-insensitive; keep the first spelling seen
        merged.setdefault(value.lower(), value)
    return sorted(merged.values(), key=str.lower)


def plan_update(existing, containers, tables):
    """Work out the containers and tables a storage insight should hold.

    Entries already configured are never removed. ``Changed`` is False when
    the insight already covers everything, in which case no PUT is needed.
    """
    properties = (existing or {}).get('properties') or {}
    current_containers = properties.get('containers') or []
    current_tables = properties.get('tables') or []
    known_containers = {c.lower() for c in current_containers}
    known_tables = {t.lower() for t in current_tables}
    added_containers = sorted({c for c in containers if c.lower() not in known_containers}, key=str.lower)
    added_tables = sorted({t for t in tables if t.lower() not in known_tables}, key=str.lower)
    return {
        'Containers': _union(current_containers, containers),
        'Tables': _union(current_tables, tables),
        'Changed': bool(added_containers or added_tables),
        'AddedContainers': added_containers,
        'AddedTables': added_tables,
    }
