import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError
from pydantic import Field

from ..clients import compact, paginate
from ..core_logic.diff_engine import (
    Listener,
    plan_listeners,
    plan_members,
    plan_security_groups,
    plan_subnets,
)
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..errors import FieldValidationError
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)

LISTENER_PROTOCOLS = ("HTTP", "HTTPS", "TCP", "SSL")
MIN_PORT = 1
MAX_PORT = 65535
NOT_FOUND_CODES = ("LoadBalancerNotFound", "AccessPointNotFound")


class ELBEvent(ResourceEvent):
    is_private: Optional[bool] = None
    listeners: List[Listener] = Field(default_factory=list)
    dns_name: Optional[str] = None
    instances: List[str] = Field(default_factory=list)
    instance_names: List[str] = Field(default_factory=list)
    instance_aws_ids: List[Optional[str]] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    network_aws_ids: List[Optional[str]] = Field(default_factory=list)
    security_groups: List[str] = Field(default_factory=list)
    security_group_aws_ids: List[Optional[str]] = Field(default_factory=list)


def to_provider_listener(listener: Listener) -> Dict[str, Any]:
    return compact(
        Protocol=listener.protocol,
        LoadBalancerPort=listener.from_port,
        InstanceProtocol=listener.protocol,
        InstancePort=listener.to_port,
        SSLCertificateId=listener.ssl_cert,
    )


def from_provider_listeners(descriptions: Iterable[Dict[str, Any]]) -> List[Listener]:
    listeners = []
    for description in descriptions:
        listener = description["Listener"]
        listeners.append(
            Listener(
                from_port=listener["LoadBalancerPort"],
                to_port=listener.get("InstancePort"),
                protocol=listener.get("Protocol"),
                ssl_cert=listener.get("SSLCertificateId"),
            )
        )
    return listeners


def _ids(values: Iterable[Optional[str]]) -> List[str]:
    return [v for v in values if v]


def _instances(ids: Iterable[str]) -> List[Dict[str, str]]:
    return [{"InstanceId": i} for i in ids]


class ELBAdapter(ResourceAdapter):
    """A classic load balancer with reconciled groups, subnets, members and listeners."""

    resource_type = "elb"
    event_model = ELBEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "ELB name invalid"),
    ]

    def validate_fields(self) -> None:
        if self.action == Action.DELETE:
            return
        for i, listener in enumerate(self.event.listeners):
            path = f"listeners[{i}]"
            if (listener.protocol or "").upper() not in LISTENER_PROTOCOLS:
                raise FieldValidationError(self.resource_type, f"{path}.protocol", "ELB protocol invalid")
            if listener.from_port is None or not MIN_PORT <= listener.from_port <= MAX_PORT:
                raise FieldValidationError(self.resource_type, f"{path}.from_port", "ELB from port invalid")
            if listener.to_port is None or not MIN_PORT <= listener.to_port <= MAX_PORT:
                raise FieldValidationError(self.resource_type, f"{path}.to_port", "ELB to port invalid")

    def create(self) -> None:
        resp = self.elb.create_load_balancer(
            **compact(
                LoadBalancerName=self.event.name,
                Listeners=[to_provider_listener(l) for l in self.event.listeners],
                Subnets=_ids(self.event.network_aws_ids) or None,
                SecurityGroups=_ids(self.event.security_group_aws_ids) or None,
                Scheme="internal" if self.event.is_private else None,
            )
        )
        self.event.dns_name = resp.get("DNSName")
        logger.info("Created load balancer %s", self.event.name)

        members = _ids(self.event.instance_aws_ids)
        if members:
            self.elb.register_instances_with_load_balancer(
                LoadBalancerName=self.event.name, Instances=_instances(members)
            )
        self.tag(self.event.name)

    def update(self) -> None:
        name = self.event.name
        lb = self._describe()
        groups = plan_security_groups(self.event.security_group_aws_ids, lb.get("SecurityGroups", []))
        subnets = plan_subnets(self.event.network_aws_ids, lb.get("Subnets", []))
        members = plan_members(
            self.event.instance_aws_ids, [i["InstanceId"] for i in lb.get("Instances", [])]
        )
        listeners = plan_listeners(
            self.event.listeners, from_provider_listeners(lb.get("ListenerDescriptions", []))
        )

        self.enter(Phase.APPLYING)
        desired_groups = _ids(self.event.security_group_aws_ids)
        if groups.has_changes() and desired_groups:
            # The provider replaces the whole set in one call
            self.elb.apply_security_groups_to_load_balancer(
                LoadBalancerName=name, SecurityGroups=desired_groups
            )

        if subnets.to_remove:
            self.elb.detach_load_balancer_from_subnets(LoadBalancerName=name, Subnets=subnets.to_remove)
        if subnets.to_add:
            self.elb.attach_load_balancer_to_subnets(LoadBalancerName=name, Subnets=subnets.to_add)

        if members.to_remove:
            self.elb.deregister_instances_from_load_balancer(
                LoadBalancerName=name, Instances=_instances(members.to_remove)
            )
        if members.to_add:
            self.elb.register_instances_with_load_balancer(
                LoadBalancerName=name, Instances=_instances(members.to_add)
            )

        if listeners.to_remove:
            self.elb.delete_load_balancer_listeners(
                LoadBalancerName=name, LoadBalancerPorts=[l.from_port for l in listeners.to_remove]
            )
        if listeners.to_add:
            self.elb.create_load_balancer_listeners(
                LoadBalancerName=name, Listeners=[to_provider_listener(l) for l in listeners.to_add]
            )

        self.event.dns_name = lb.get("DNSName")
        self.tag(name)

    def delete(self) -> None:
        self.elb.delete_load_balancer(LoadBalancerName=self.event.name)
        self.poll(
            self._removed,
            self.config.polling.elb_removal,
            f"load balancer {self.event.name} to be removed",
        )
        logger.info("Deleted load balancer %s", self.event.name)

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        self.elb.add_tags(LoadBalancerNames=resource_ids, Tags=to_tag_list(tags))

    def _describe(self) -> Dict[str, Any]:
        resp = self.elb.describe_load_balancers(LoadBalancerNames=[self.event.name])
        return resp["LoadBalancerDescriptions"][0]

    def _removed(self) -> bool:
        try:
            resp = self.elb.describe_load_balancers(LoadBalancerNames=[self.event.name])
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in NOT_FOUND_CODES:
                return True
            raise
        return not resp.get("LoadBalancerDescriptions")


class ELBCollection(CollectionAdapter):
    resource_type = "elb"

    def find(self) -> Iterable[ELBEvent]:
        for lb in paginate(self.elb, "describe_load_balancers", "LoadBalancerDescriptions"):
            name = lb["LoadBalancerName"]
            descriptions = self.elb.describe_tags(LoadBalancerNames=[name]).get("TagDescriptions", [])
            tags = from_tag_list(descriptions[0].get("Tags")) if descriptions else {}
            yield self.component(
                ELBEvent(
                    name=name,
                    is_private=lb.get("Scheme") == "internal",
                    dns_name=lb.get("DNSName"),
                    listeners=from_provider_listeners(lb.get("ListenerDescriptions", [])),
                    instance_aws_ids=[i["InstanceId"] for i in lb.get("Instances", [])],
                    network_aws_ids=lb.get("Subnets", []),
                    security_group_aws_ids=lb.get("SecurityGroups", []),
                    tags=tags,
                )
            )
