"""Compute Engine REST client used to manage routes and instance groups"""

import threading
import time
from typing import Any, Dict, List, Optional

import httpx
from google.auth.exceptions import GoogleAuthError

from iprouter.errors import IpRouterError

COMPUTE_URL = "https://compute.googleapis.com/compute/v1"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# globalOperations.wait answers after at most about two minutes
OPERATION_WAIT_MAX = 130.0


class APIError(IpRouterError):
    """Base exception for API errors"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(APIError):
    """Resource not found"""

    pass


class ConflictError(APIError):
    """Resource already exists"""

    pass


class UnauthorizedError(APIError):
    """Unauthorized access"""

    pass


class OperationError(APIError):
    """A long-running operation finished with errors or did not finish in time"""

    pass


def network_url(project: str, network: str) -> str:
    return f"projects/{project}/global/networks/{network}"


def instance_url(project: str, zone: str, name: str) -> str:
    return f"projects/{project}/zones/{zone}/instances/{name}"


class RouteAPI:
    """Route operations for a specific project"""

    def __init__(self, client: "Client", project: str):
        self.client = client
        self.project = project

    def list(self, filter: Optional[str] = None, fields: Optional[str] = None) -> List[Dict[str, Any]]:
        """List routes, following pagination"""
        params: Dict[str, Any] = {}
        if filter:
            params["filter"] = filter
        if fields:
            params["fields"] = fields
        return self.client._list(f"/projects/{self.project}/global/routes", params)

    def names(self, filter: Optional[str] = None) -> List[str]:
        """List route names only"""
        routes = self.list(filter=filter, fields="items(name),nextPageToken")
        return [route["name"] for route in routes]

    def create(self, route: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a route, returning the operation"""
        return self.client._post(f"/projects/{self.project}/global/routes", route)

    def delete(self, name: str) -> Dict[str, Any]:
        """Delete a route, returning the operation"""
        return self.client._delete(f"/projects/{self.project}/global/routes/{name}")


class InstanceGroupManagerAPI:
    """Managed instance group operations for a specific project"""

    def __init__(self, client: "Client", project: str):
        self.client = client
        self.project = project

    def aggregated_list(self, filter: Optional[str] = None) -> List[Dict[str, Any]]:
        """List managed instance groups across all zones and regions.

        Each returned item carries an extra ``scope`` key such as
        ``zones/us-central1-a`` or ``regions/us-central1``.
        """
        params: Dict[str, Any] = {}
        if filter:
            params["filter"] = filter

        managers = []
        page_token = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            response = self.client._get(
                f"/projects/{self.project}/aggregated/instanceGroupManagers", params=params
            )
            for scope, scoped in (response.get("items") or {}).items():
                for manager in scoped.get("instanceGroupManagers", []):
                    managers.append({**manager, "scope": scope})
            page_token = response.get("nextPageToken")
            if not page_token:
                return managers

    def get(self, scope: str, name: str) -> Dict[str, Any]:
        """Get a managed instance group by scope and name"""
        return self.client._get(f"/projects/{self.project}/{scope}/instanceGroupManagers/{name}")


class Client:
    """Compute Engine API client

    Credentials come from google-auth application default credentials, which
    resolve to the attached service account when running on an instance. A
    static ``token`` may be given instead.
    """

    def __init__(
        self,
        base_url: str = COMPUTE_URL,
        token: str = "",
        credentials: Any = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.credentials = credentials
        self.timeout = timeout
        self.transport = transport
        self._lock = threading.Lock()

    def routes(self, project: str) -> RouteAPI:
        """Get route API for project"""
        return RouteAPI(self, project)

    def instance_group_managers(self, project: str) -> InstanceGroupManagerAPI:
        """Get managed instance group API for project"""
        return InstanceGroupManagerAPI(self, project)

    def wait_operation(self, project: str, operation: Dict[str, Any], timeout: float = 300.0) -> Dict[str, Any]:
        """Block until a global operation is DONE, raising OperationError on failure"""
        deadline = time.monotonic() + timeout
        name = operation.get("name", "")

        while operation.get("status") != "DONE":
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise OperationError(f"Operation {name} did not finish within {timeout:.0f}s")
            operation = self._request(
                "POST",
                f"/projects/{project}/global/operations/{name}/wait",
                timeout=min(remaining, OPERATION_WAIT_MAX),
            )

        if error := operation.get("error"):
            messages = "; ".join(e.get("message", e.get("code", "")) for e in error.get("errors", []))
            raise OperationError(f"Operation {name} failed: {messages}")

        return operation

    def _access_token(self) -> str:
        """Return a bearer token, refreshing credentials when needed"""
        if self.token:
            return self.token

        with self._lock:
            if self.credentials is None:
                import google.auth

                self.credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])

            if not self.credentials.valid:
                from google.auth.transport.requests import Request

                self.credentials.refresh(Request())

            return self.credentials.token

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute GET request"""
        return self._request("GET", path, params=params)

    def _post(self, path: str, data: Any = None) -> Any:
        """Execute POST request"""
        return self._request("POST", path, json=data)

    def _delete(self, path: str) -> Any:
        """Execute DELETE request"""
        return self._request("DELETE", path)

    def _list(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Collect ``items`` across all pages of a list call"""
        items: List[Dict[str, Any]] = []
        params = dict(params)
        while True:
            response = self._get(path, params=params)
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items
            params["pageToken"] = page_token

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> Any:
        """Execute HTTP request

        Transport and credential failures are raised as APIError so callers
        handle every failure of a call the same way.
        """
        url = self.base_url + path

        headers = kwargs.pop("headers", {})
        try:
            headers["Authorization"] = f"Bearer {self._access_token()}"
        except GoogleAuthError as e:
            raise UnauthorizedError(f"Cannot obtain credentials: {e}") from e

        try:
            with httpx.Client(timeout=self.timeout if timeout is None else timeout, transport=self.transport) as client:
                response = client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise APIError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {path}", 404)
        elif response.status_code == 409:
            raise ConflictError(f"Resource already exists: {path}", 409)
        elif response.status_code in (401, 403):
            raise UnauthorizedError(f"Unauthorized: {response.text}", response.status_code)
        elif response.status_code >= 400:
            raise APIError(
                f"API error {response.status_code}: {response.text}", response.status_code
            )

        if not response.text:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON from {path}: {e}", response.status_code) from e
