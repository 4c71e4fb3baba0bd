"""
Routes an inbound event to the handler for its subject.

A subject has the form "<type>.<action>.<provider>", e.g. "firewall.create.aws".
It is resolved once into a (ResourceType, Action) pair; `find` goes to the
type's collection handler, every other action to its single-resource adapter.
"""

import json
import logging
import threading
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple, Type, Union

from pydantic import ValidationError

from .adapters.base import AuthenticateFn, CollectionAdapter, ResourceAdapter
from .adapters.ebs import EBSVolumeAdapter, EBSVolumeCollection
from .adapters.elb import ELBAdapter, ELBCollection
from .adapters.firewall import FirewallAdapter, FirewallCollection
from .adapters.iam_instance_profile import IAMInstanceProfileAdapter, IAMInstanceProfileCollection
from .adapters.iam_policy import IAMPolicyAdapter, IAMPolicyCollection
from .adapters.iam_role import IAMRoleAdapter, IAMRoleCollection
from .adapters.instance import InstanceAdapter, InstanceCollection
from .adapters.internet_gateway import InternetGatewayAdapter
from .adapters.nat import NatAdapter, NatCollection
from .adapters.network import NetworkAdapter, NetworkCollection
from .adapters.rds_cluster import RDSClusterAdapter, RDSClusterCollection
from .adapters.rds_instance import RDSInstanceAdapter, RDSInstanceCollection
from .adapters.route53 import Route53Adapter, Route53Collection
from .adapters.s3 import S3Adapter, S3Collection
from .adapters.vpc import VpcAdapter, VpcCollection
from .clients import authenticate
from .config import AdapterConfig
from .errors import UnsupportedOperationError
from .models import Action, CollectionEvent, EventState

logger = logging.getLogger(__name__)

PROVIDER = "aws"


class ResourceType(str, Enum):
    VPC = "vpc"
    NETWORK = "network"
    INTERNET_GATEWAY = "internet_gateway"
    NAT = "nat"
    FIREWALL = "firewall"
    INSTANCE = "instance"
    EBS_VOLUME = "ebs_volume"
    ELB = "elb"
    S3 = "s3"
    ROUTE53 = "route53"
    RDS_INSTANCE = "rds_instance"
    RDS_CLUSTER = "rds_cluster"
    IAM_ROLE = "iam_role"
    IAM_POLICY = "iam_policy"
    IAM_INSTANCE_PROFILE = "iam_instance_profile"


REGISTRY: Dict[ResourceType, Tuple[Type[ResourceAdapter], Optional[Type[CollectionAdapter]]]] = {
    ResourceType.VPC: (VpcAdapter, VpcCollection),
    ResourceType.NETWORK: (NetworkAdapter, NetworkCollection),
    ResourceType.INTERNET_GATEWAY: (InternetGatewayAdapter, None),
    ResourceType.NAT: (NatAdapter, NatCollection),
    ResourceType.FIREWALL: (FirewallAdapter, FirewallCollection),
    ResourceType.INSTANCE: (InstanceAdapter, InstanceCollection),
    ResourceType.EBS_VOLUME: (EBSVolumeAdapter, EBSVolumeCollection),
    ResourceType.ELB: (ELBAdapter, ELBCollection),
    ResourceType.S3: (S3Adapter, S3Collection),
    ResourceType.ROUTE53: (Route53Adapter, Route53Collection),
    ResourceType.RDS_INSTANCE: (RDSInstanceAdapter, RDSInstanceCollection),
    ResourceType.RDS_CLUSTER: (RDSClusterAdapter, RDSClusterCollection),
    ResourceType.IAM_ROLE: (IAMRoleAdapter, IAMRoleCollection),
    ResourceType.IAM_POLICY: (IAMPolicyAdapter, IAMPolicyCollection),
    ResourceType.IAM_INSTANCE_PROFILE: (IAMInstanceProfileAdapter, IAMInstanceProfileCollection),
}


class Subject(NamedTuple):
    resource_type: ResourceType
    action: Action

    @classmethod
    def parse(cls, subject: str) -> "Subject":
        parts = subject.split(".") if subject else []
        if len(parts) != 3 or parts[2] != PROVIDER:
            raise UnsupportedOperationError(subject)
        try:
            return cls(ResourceType(parts[0]), Action(parts[1]))
        except ValueError:
            raise UnsupportedOperationError(subject)

    def __str__(self) -> str:
        return f"{self.resource_type.value}.{self.action.value}.{PROVIDER}"


class EventResponse(NamedTuple):
    subject: str
    state: str
    body: Dict[str, Any]

    @property
    def completed(self) -> bool:
        return self.state == EventState.COMPLETED.value

    def to_json(self) -> str:
        return json.dumps(self.body)


def _errored(subject: str, body: Dict[str, Any], err: Exception) -> EventResponse:
    logger.error("%s rejected: %s", subject, err)
    body = dict(body)
    body["_state"] = EventState.ERRORED.value
    body["error"] = str(err)
    return EventResponse(subject, EventState.ERRORED.value, body)


def _load_body(body: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(body, dict):
        return body
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError("event body must be a JSON object")
    return data


def handle_event(
    subject: str,
    body: Union[str, bytes, Dict[str, Any]],
    config: Optional[AdapterConfig] = None,
    authenticate: AuthenticateFn = authenticate,
    cancel: Optional[threading.Event] = None,
) -> EventResponse:
    """
    Processes one event and returns its response document.

    Bad input (an unparseable body, an unknown subject, fields of the wrong
    type) produces an errored response instead of raising. Provider errors are
    reported by the adapters themselves; anything else propagates.
    """
    try:
        data = _load_body(body)
    except ValueError as e:
        return _errored(subject, {}, ValueError(f"Invalid event body: {e}"))

    try:
        parsed = Subject.parse(subject)
    except UnsupportedOperationError as e:
        return _errored(subject, data, e)

    adapter_cls, collection_cls = REGISTRY[parsed.resource_type]
    logger.info("Handling %s", parsed)

    try:
        if parsed.action == Action.FIND:
            if collection_cls is None:
                return _errored(subject, data, UnsupportedOperationError(subject))
            handler = collection_cls(
                CollectionEvent.model_validate(data),
                subject,
                parsed.action,
                authenticate=authenticate,
                config=config,
                cancel=cancel,
            )
        else:
            handler = adapter_cls(
                adapter_cls.event_model.model_validate(data),
                subject,
                parsed.action,
                authenticate=authenticate,
                config=config,
                cancel=cancel,
            )
    except ValidationError as e:
        return _errored(subject, data, ValueError(f"Invalid event body: {e}"))

    document = handler.process()
    return EventResponse(subject, document.state, document.to_body())
