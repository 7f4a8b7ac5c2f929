"""
Policy Exporter - Render policy objects as YAML manifests.

One YAML document per object, separated by `---`, ready for
`kubectl apply -f -` (Sidecars) or `tctl apply -f -` (TrafficSettings).
"""

from __future__ import annotations

from typing import IO, Iterable, List
import json
import logging

import yaml

from meshreach.policy.objects import PolicyObject

logger = logging.getLogger(__name__)


def render_yaml(objects: Iterable[PolicyObject]) -> str:
    """Render objects as a multi-document YAML string."""
    docs: List[dict] = [obj.to_dict() for obj in objects]
    if not docs:
        return ""
    return yaml.safe_dump_all(docs, sort_keys=False, default_flow_style=False)


def write_yaml(objects: Iterable[PolicyObject], stream: IO[str]) -> int:
    """
    Write objects as YAML to a stream.

    Returns:
        Number of documents written
    """
    objects = list(objects)
    stream.write(render_yaml(objects))
    logger.info(f"Wrote {len(objects)} policy documents")
    return len(objects)


def render_json(objects: Iterable[PolicyObject], indent: int = 4) -> str:
    """Render objects as a JSON array (used for debug dumps)."""
    return json.dumps([obj.to_dict() for obj in objects], indent=indent)
