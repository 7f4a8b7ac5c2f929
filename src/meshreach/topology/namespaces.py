"""
Namespace Resolver - Namespaces a service is deployed into.
"""

from __future__ import annotations

from typing import List

from meshreach.fqn import segment_values
from meshreach.topology.models import Service


def resolve_namespaces(service: Service) -> List[str]:
    """
    Collect the namespaces found in a service's deployment FQNs.

    Deployment order is kept and repeated namespaces are not collapsed;
    callers dedup when they need to.
    """
    namespaces: List[str] = []
    for deployment in service.deployments:
        namespaces.extend(segment_values(deployment.fqn, "namespaces"))
    return namespaces
