"""
TSB API Client

Client for the Tetrate Service Bridge APIs the reachability pipeline
reads from:
- the GraphQL observability endpoint (SkyWalking global topology)
- the service registry (ListServices)
- the traffic group lookup for a service
- the TrafficSettings of a traffic group
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional
import logging

import requests
from pydantic import ValidationError
from requests.auth import HTTPBasicAuth

from meshreach.policy.objects import TrafficSetting
from meshreach.topology.models import Service, TopologyResponse, TrafficGroup

logger = logging.getLogger(__name__)


DATE_FORMAT = "%Y-%m-%d"

TOPOLOGY_QUERY = (
    "query ListNodesAndEdges($duration: Duration!) {"
    "topo: getGlobalTopology(duration: $duration) {"
    " nodes { id, name, type, isReal }"
    " calls { id, source, sourceComponents, target, targetComponents, detectPoints } } }"
)


class TSBAPIError(Exception):
    """Raised when a TSB API request fails."""
    pass


class TSBClient:
    """
    TSB HTTP client.

    Every call is a single blocking request; nothing is retried.

    Example:
        >>> with TSBClient("tsb.example.com", "admin", "secret") as client:
        ...     services = client.fetch_services()
    """

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        org: str = "tetrate",
        verify_ssl: bool = True,
        timeout: int = 30,
    ):
        """
        Initialize TSB client.

        Args:
            server: TSB address without scheme (e.g., "tsb.example.com")
            username: User for HTTP basic auth
            password: Password for HTTP basic auth
            org: TSB organization to query
            verify_ssl: Whether to verify the server certificate
            timeout: Request timeout in seconds
        """
        self.server = server
        self.base_url = f"https://{server}"
        self.org = org
        self.timeout = timeout

        self.session = requests.Session()
        self.session.auth = HTTPBasicAuth(username, password)
        self.session.verify = verify_ssl
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def __enter__(self) -> "TSBClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
    ) -> Any:
        """
        Make a request to TSB and decode the JSON body.

        Args:
            method: HTTP method
            path: Path below the server root, with or without leading slash
            data: Request body (JSON encoded)

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            TSBAPIError: On transport errors, HTTP errors or invalid JSON
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug(f"sending {method} to {url!r}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=data,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TSBAPIError(f"failed to issue request to {url}: {e}") from e

        body = response.text or ""
        sample = body if len(body) <= 80 else f"{body[:80]}..."
        logger.debug(f"got body: {sample}")

        if response.status_code >= 400:
            raise TSBAPIError(
                f"TSB API error ({response.status_code}) for {method} {url}: {sample or 'no body'}"
            )

        if not body:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TSBAPIError(f"invalid JSON from {url}: {e}") from e

    def _expect_dict(self, value: Any, what: str) -> Dict[str, Any]:
        """Return `value` as a mapping; None reads as empty."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise TSBAPIError(
                f"unexpected {what} payload: expected an object, got {type(value).__name__}"
            )
        return value

    def _expect_list(self, value: Any, what: str) -> List[Any]:
        """Return `value` as a list; None reads as empty."""
        if value is None:
            return []
        if not isinstance(value, list):
            raise TSBAPIError(
                f"unexpected {what} payload: expected a list, got {type(value).__name__}"
            )
        return value

    def fetch_topology(self, start: date, end: date) -> TopologyResponse:
        """
        Return the global service topology from SkyWalking.

        Nodes still need to be normalized to TSB services via the aggregated
        metric names of each Service.

        Raises:
            TSBAPIError: On request failure, GraphQL errors or an
                unexpected payload shape
        """
        query = {
            "query": TOPOLOGY_QUERY,
            "variables": {
                "duration": {
                    "start": start.strftime(DATE_FORMAT),
                    "end": end.strftime(DATE_FORMAT),
                    "step": "DAY",
                }
            },
        }
        logger.debug(f"issuing query: {query}")

        try:
            body = self._make_request("POST", "/graphql", data=query)
        except TSBAPIError as e:
            raise TSBAPIError(f"failed to get topology: {e}") from e

        body = self._expect_dict(body, "topology")
        if errors := body.get("errors"):
            messages = [
                err.get("message", str(err)) if isinstance(err, dict) else str(err)
                for err in self._expect_list(errors, "topology errors")
            ]
            raise TSBAPIError(f"failed to get topology: {'; '.join(messages)}")

        data = self._expect_dict(body.get("data"), "topology data")
        topo = self._expect_dict(data.get("topo"), "topology")
        try:
            return TopologyResponse.model_validate(topo)
        except ValidationError as e:
            raise TSBAPIError(f"unexpected topology payload: {e}") from e

    def fetch_services(self) -> List[Service]:
        """Call TSB's ListServices endpoint for the organization."""
        try:
            body = self._make_request("GET", f"/v2/organizations/{self.org}/services")
        except TSBAPIError as e:
            raise TSBAPIError(f"failed to get services: {e}") from e

        services = self._expect_list(
            self._expect_dict(body, "services").get("services"), "services"
        )
        try:
            return [Service.model_validate(s) for s in services]
        except ValidationError as e:
            raise TSBAPIError(f"unexpected services payload: {e}") from e

    def lookup_traffic_group(self, service: Service) -> Optional[TrafficGroup]:
        """Return the first traffic group matching the service, or None."""
        try:
            body = self._make_request("GET", f"/v2/{service.fqn}/groups")
        except TSBAPIError as e:
            logger.debug(f"failed to get service groups for {service.fqn!r}: {e}")
            raise

        groups = self._expect_list(
            self._expect_dict(body, "traffic groups").get("trafficGroups"), "traffic groups"
        )
        if not groups:
            return None
        try:
            return TrafficGroup.model_validate(groups[0])
        except ValidationError as e:
            logger.debug(f"failed to decode traffic group of {service.fqn!r}: {e}")
            raise TSBAPIError(f"unexpected traffic group payload for {service.fqn}: {e}") from e

    def fetch_traffic_setting(self, group_fqn: str) -> Optional[TrafficSetting]:
        """
        Return the first TrafficSetting of a traffic group, or None.

        A body that isn't a list of settings is treated as "no settings".
        """
        try:
            body = self._make_request("GET", f"/{group_fqn}/settings")
        except TSBAPIError as e:
            raise TSBAPIError(f"failed to get traffic settings: {e}") from e

        if isinstance(body, dict):
            body = body.get("settings")
        if not isinstance(body, list) or not body:
            return None

        try:
            return TrafficSetting.model_validate(body[0])
        except ValidationError as e:
            logger.warning(f"ignoring undecodable traffic setting for {group_fqn!r}: {e}")
            return None
