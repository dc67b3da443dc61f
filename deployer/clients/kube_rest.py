# deployer/clients/kube_rest.py

import json
import ssl
from typing import Dict, Any, Optional, List, Union

import httpx

from ..core.logging import LoggingMixin
from ..errors import ClusterApiError, ClusterUnreachable
from .interfaces import ClusterApi


DEPLOYMENTS_PATH = "/apis/apps/v1/namespaces/{namespace}/deployments"
SERVICES_PATH = "/api/v1/namespaces/{namespace}/services"

_DELETE_OPTIONS = {
    "kind": "DeleteOptions",
    "apiVersion": "v1",
    "propagationPolicy": "Background",
}


class KubeRestClient(ClusterApi, LoggingMixin):
    """ClusterApi implementation on the Kubernetes REST API"""

    def __init__(self,
                 base_url: str,
                 token: Optional[str] = None,
                 ca_cert: Optional[str] = None,
                 verify_tls: bool = True,
                 timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout

        verify: Union[bool, ssl.SSLContext] = verify_tls
        if ca_cert:
            verify = ssl.create_default_context(cafile=ca_cert)
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            verify=verify,
            timeout=timeout,
            transport=transport,
        )

        self.log_debug("Kubernetes REST client initialized", url=self.base_url)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, resource: str,
                       body: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, str]] = None,
                       allow_missing: bool = False) -> Optional[Dict[str, Any]]:
        try:
            response = await self._client.request(method, path, json=body, params=params)
        except httpx.TransportError as e:
            self.log_warning("Cluster API unreachable", url=f"{self.base_url}{path}",
                             resource=resource, error=str(e))
            raise ClusterUnreachable(str(e) or type(e).__name__, resource)

        if response.status_code == 404 and allow_missing:
            return None

        if response.is_error:
            message = self._error_message(response)
            self.log_debug("Cluster API error", resource=resource,
                           status_code=response.status_code, error=message)
            raise ClusterApiError(response.status_code, message, resource)

        if not response.content:
            return {}

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ClusterApiError(response.status_code, f"Invalid JSON in response: {e}", resource)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            return response.text or response.reason_phrase
        if isinstance(payload, dict) and payload.get('message'):
            return payload['message']
        return response.text

    # === Deployments ===

    async def create_deployment(self, namespace: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        name = manifest.get('metadata', {}).get('name', '')
        return await self._request(
            "POST", DEPLOYMENTS_PATH.format(namespace=namespace),
            f"deployment/{name}", body=manifest,
        )

    async def get_deployment(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._request(
            "GET", f"{DEPLOYMENTS_PATH.format(namespace=namespace)}/{name}",
            f"deployment/{name}", allow_missing=True,
        )

    async def delete_deployment(self, namespace: str, name: str) -> bool:
        result = await self._request(
            "DELETE", f"{DEPLOYMENTS_PATH.format(namespace=namespace)}/{name}",
            f"deployment/{name}", body=_DELETE_OPTIONS, allow_missing=True,
        )
        return result is not None

    async def list_deployments(self, namespace: str, label_selector: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"labelSelector": label_selector} if label_selector else None
        result = await self._request(
            "GET", DEPLOYMENTS_PATH.format(namespace=namespace), "deployments", params=params,
        )
        return result.get('items', [])

    # === Services ===

    async def create_service(self, namespace: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        name = manifest.get('metadata', {}).get('name', '')
        return await self._request(
            "POST", SERVICES_PATH.format(namespace=namespace),
            f"service/{name}", body=manifest,
        )

    async def get_service(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._request(
            "GET", f"{SERVICES_PATH.format(namespace=namespace)}/{name}",
            f"service/{name}", allow_missing=True,
        )

    async def delete_service(self, namespace: str, name: str) -> bool:
        result = await self._request(
            "DELETE", f"{SERVICES_PATH.format(namespace=namespace)}/{name}",
            f"service/{name}", body=_DELETE_OPTIONS, allow_missing=True,
        )
        return result is not None

    async def list_services(self, namespace: str, label_selector: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"labelSelector": label_selector} if label_selector else None
        result = await self._request(
            "GET", SERVICES_PATH.format(namespace=namespace), "services", params=params,
        )
        return result.get('items', [])
