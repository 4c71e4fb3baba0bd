import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import paginate
from ..core_logic.diff_engine import (
    ALL_PROTOCOLS,
    FirewallRule,
    RuleDirection,
    normalize_protocol,
    plan_rules,
)
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID, FieldValidationError
from ..models import Action, ResourceEvent, WireModel
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)

# Every new group carries this egress rule; it is revoked once, at creation.
DEFAULT_EGRESS_PERMISSION = {"IpProtocol": ALL_PROTOCOLS, "IpRanges": [{"CidrIp": "0.0.0.0/0"}]}

MIN_PORT = 0
MAX_PORT = 65535


class SecurityGroupRule(WireModel):
    ip: Optional[str] = None
    from_port: Optional[int] = None
    to_port: Optional[int] = None
    protocol: Optional[str] = None


class FirewallRules(WireModel):
    ingress: List[SecurityGroupRule] = Field(default_factory=list)
    egress: List[SecurityGroupRule] = Field(default_factory=list)


class FirewallEvent(ResourceEvent):
    security_group_aws_id: Optional[str] = None
    network_aws_id: Optional[str] = None
    rules: FirewallRules = Field(default_factory=FirewallRules)
    vpc: Optional[str] = None
    vpc_id: Optional[str] = None


def to_firewall_rules(rules: Iterable[SecurityGroupRule], direction: RuleDirection) -> List[FirewallRule]:
    return [
        FirewallRule(
            direction=direction,
            ip=rule.ip,
            protocol=rule.protocol,
            from_port=rule.from_port,
            to_port=rule.to_port,
        )
        for rule in rules
    ]


def to_permissions(rules: Iterable[FirewallRule]) -> List[Dict[str, Any]]:
    permissions = []
    for rule in rules:
        protocol = normalize_protocol(rule.protocol)
        permission: Dict[str, Any] = {"IpProtocol": protocol, "IpRanges": [{"CidrIp": rule.ip}]}
        if protocol != ALL_PROTOCOLS:
            permission["FromPort"] = rule.from_port
            permission["ToPort"] = rule.to_port
        permissions.append(permission)
    return permissions


def from_permissions(permissions: Iterable[Dict[str, Any]], direction: RuleDirection) -> List[FirewallRule]:
    """Flattens provider permissions into one rule per CIDR range.

    Group-to-group grants carry no CIDR and are not managed here.
    """
    rules = []
    for permission in permissions:
        for ip_range in permission.get("IpRanges", []):
            rules.append(
                FirewallRule(
                    direction=direction,
                    ip=ip_range["CidrIp"],
                    protocol=permission["IpProtocol"],
                    from_port=permission.get("FromPort"),
                    to_port=permission.get("ToPort"),
                    description=ip_range.get("Description"),
                )
            )
    return rules


class FirewallAdapter(ResourceAdapter):
    """A VPC security group whose ingress/egress rules are reconciled."""

    resource_type = "firewall"
    event_model = FirewallEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID),
        *ENVELOPE_REQUIREMENTS,
        require("security_group_aws_id", "Security Group aws id invalid", unless=[Action.CREATE]),
        require("name", "Security Group name invalid", on=[Action.CREATE, Action.UPDATE]),
    ]

    def validate_fields(self) -> None:
        if self.action not in (Action.CREATE, Action.UPDATE):
            return
        rules = self.event.rules
        if not rules.ingress and not rules.egress:
            raise FieldValidationError(self.resource_type, "rules", "Security Group must contain rules")
        for direction in ("ingress", "egress"):
            for i, rule in enumerate(getattr(rules, direction)):
                self._validate_rule(rule, f"rules.{direction}[{i}]")

    def _validate_rule(self, rule: SecurityGroupRule, path: str) -> None:
        if not rule.ip:
            raise FieldValidationError(self.resource_type, f"{path}.ip", "Security Group rule ip invalid")
        if not rule.protocol:
            raise FieldValidationError(
                self.resource_type, f"{path}.protocol", "Security Group rule protocol invalid"
            )
        if normalize_protocol(rule.protocol) == ALL_PROTOCOLS:
            return
        for port_field in ("from_port", "to_port"):
            port = getattr(rule, port_field)
            if port is None or port < MIN_PORT or port > MAX_PORT:
                label = port_field.replace("_", " ")
                raise FieldValidationError(
                    self.resource_type,
                    f"{path}.{port_field}",
                    f"Security Group rule {label} invalid",
                )

    def _desired(self, direction: RuleDirection) -> List[FirewallRule]:
        return to_firewall_rules(getattr(self.event.rules, direction.value), direction)

    def create(self) -> None:
        resp = self.ec2.create_security_group(
            GroupName=self.event.name,
            Description=self.event.name,
            VpcId=self.event.vpc_id,
        )
        group_id = resp["GroupId"]
        self.event.security_group_aws_id = group_id
        logger.info("Created security group %s (%s)", group_id, self.event.name)

        self.ec2.revoke_security_group_egress(GroupId=group_id, IpPermissions=[DEFAULT_EGRESS_PERMISSION])

        self.enter(Phase.APPLYING)
        self._authorize(self._desired(RuleDirection.INGRESS), self._desired(RuleDirection.EGRESS))
        self.tag(group_id)

    def update(self) -> None:
        group_id = self.event.security_group_aws_id
        resp = self.ec2.describe_security_groups(GroupIds=[group_id])
        group = resp["SecurityGroups"][0]

        ingress = plan_rules(
            self._desired(RuleDirection.INGRESS),
            from_permissions(group.get("IpPermissions", []), RuleDirection.INGRESS),
        )
        egress = plan_rules(
            self._desired(RuleDirection.EGRESS),
            from_permissions(group.get("IpPermissionsEgress", []), RuleDirection.EGRESS),
        )

        self.enter(Phase.APPLYING)
        if ingress.to_remove:
            self.ec2.revoke_security_group_ingress(GroupId=group_id, IpPermissions=to_permissions(ingress.to_remove))
        if egress.to_remove:
            self.ec2.revoke_security_group_egress(GroupId=group_id, IpPermissions=to_permissions(egress.to_remove))
        self._authorize(ingress.to_add, egress.to_add)
        self.tag(group_id)

    def _authorize(self, ingress: List[FirewallRule], egress: List[FirewallRule]) -> None:
        group_id = self.event.security_group_aws_id
        if ingress:
            self.ec2.authorize_security_group_ingress(GroupId=group_id, IpPermissions=to_permissions(ingress))
        if egress:
            self.ec2.authorize_security_group_egress(GroupId=group_id, IpPermissions=to_permissions(egress))

    def delete(self) -> None:
        self.ec2.delete_security_group(GroupId=self.event.security_group_aws_id)
        logger.info("Deleted security group %s", self.event.security_group_aws_id)


def to_wire_rules(rules: Iterable[FirewallRule]) -> List[SecurityGroupRule]:
    return [
        SecurityGroupRule(ip=r.ip, protocol=r.protocol, from_port=r.from_port, to_port=r.to_port)
        for r in rules
    ]


class FirewallCollection(CollectionAdapter):
    resource_type = "firewall"

    def find(self) -> Iterable[FirewallEvent]:
        for group in paginate(self.ec2, "describe_security_groups", "SecurityGroups"):
            ingress = from_permissions(group.get("IpPermissions", []), RuleDirection.INGRESS)
            egress = from_permissions(group.get("IpPermissionsEgress", []), RuleDirection.EGRESS)
            yield self.component(
                FirewallEvent(
                    security_group_aws_id=group["GroupId"],
                    name=group.get("GroupName"),
                    vpc_id=group.get("VpcId"),
                    rules=FirewallRules(ingress=to_wire_rules(ingress), egress=to_wire_rules(egress)),
                    tags=from_tag_list(group.get("Tags")),
                )
            )
