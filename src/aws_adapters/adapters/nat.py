import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import paginate
from ..core_logic.diff_engine import plan_subnets
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require
from .ec2_common import (
    DEFAULT_ROUTE,
    ensure_internet_gateway,
    ensure_route_table,
    find_route_table,
    route_tables_through,
    routes_through,
    subnet_ids_of,
)

logger = logging.getLogger(__name__)

NAT_ROUTE_FILTER = "route.nat-gateway-id"


class NatEvent(ResourceEvent):
    nat_gateway_aws_id: Optional[str] = None
    public_network: Optional[str] = None
    public_network_aws_id: Optional[str] = None
    routed_networks: List[str] = Field(default_factory=list)
    routed_networks_aws_ids: List[Optional[str]] = Field(default_factory=list)
    nat_gateway_allocation_id: Optional[str] = None
    nat_gateway_allocation_ip: Optional[str] = None
    internet_gateway_id: Optional[str] = None
    vpc_id: Optional[str] = None


class NatAdapter(ResourceAdapter):
    resource_type = "nat"
    event_model = NatEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID, unless=[Action.DELETE]),
        *ENVELOPE_REQUIREMENTS,
        require("nat_gateway_aws_id", "Nat Gateway aws id invalid", unless=[Action.CREATE]),
        require("public_network_aws_id", "Nat Gateway public network invalid", unless=[Action.DELETE]),
        require("routed_networks_aws_ids", "Nat Gateway routed networks invalid", unless=[Action.DELETE]),
    ]

    def create(self) -> None:
        allocation = self.ec2.allocate_address(Domain="vpc")
        self.event.nat_gateway_allocation_id = allocation["AllocationId"]
        self.event.nat_gateway_allocation_ip = allocation["PublicIp"]

        self.event.internet_gateway_id = ensure_internet_gateway(self.ec2, self.event.vpc_id)

        resp = self.ec2.create_nat_gateway(
            AllocationId=self.event.nat_gateway_allocation_id,
            SubnetId=self.event.public_network_aws_id,
        )
        nat_id = resp["NatGateway"]["NatGatewayId"]
        self.event.nat_gateway_aws_id = nat_id
        self.wait(self.ec2, "nat_gateway_available", NatGatewayIds=[nat_id])
        logger.info("Created nat gateway %s", nat_id)

        self._route_networks()
        self.tag(nat_id)

    def update(self) -> None:
        self._route_networks()
        self.tag(self.event.nat_gateway_aws_id)

    def _route_networks(self) -> None:
        nat_id = self.event.nat_gateway_aws_id
        routed = subnet_ids_of(route_tables_through(self.ec2, NAT_ROUTE_FILTER, nat_id))
        plan = plan_subnets(self.event.routed_networks_aws_ids, routed)

        desired = set(plan.unchanged + plan.to_add)
        cleared = set()

        self.enter(Phase.APPLYING)
        for subnet_id in plan.to_remove:
            table = find_route_table(self.ec2, subnet_id)
            if table is None or table["RouteTableId"] in cleared:
                continue
            if not routes_through(table, "NatGatewayId", nat_id):
                continue
            shared_with = desired.intersection(subnet_ids_of([table]))
            if shared_with:
                # The route also serves subnets that stay behind the gateway.
                logger.info(
                    "Keeping route of %s for %s", table["RouteTableId"], ", ".join(sorted(shared_with))
                )
                continue
            self.ec2.delete_route(RouteTableId=table["RouteTableId"], DestinationCidrBlock=DEFAULT_ROUTE)
            cleared.add(table["RouteTableId"])
        for subnet_id in plan.to_add:
            table = ensure_route_table(self.ec2, self.event.vpc_id, subnet_id)
            if routes_through(table, "NatGatewayId", nat_id):
                continue
            self.ec2.create_route(
                RouteTableId=table["RouteTableId"],
                DestinationCidrBlock=DEFAULT_ROUTE,
                NatGatewayId=nat_id,
            )

    def delete(self) -> None:
        nat_id = self.event.nat_gateway_aws_id
        if not self.event.nat_gateway_allocation_id:
            gateway = self._describe(nat_id)
            if gateway is not None:
                self.event.nat_gateway_allocation_id = _allocation(gateway).get("AllocationId")

        self.ec2.delete_nat_gateway(NatGatewayId=nat_id)
        self.poll(
            self._deleted,
            self.config.polling.nat_deletion,
            f"nat gateway {nat_id} to be deleted",
        )
        logger.info("Deleted nat gateway %s", nat_id)

        if self.event.nat_gateway_allocation_id:
            self.ec2.release_address(AllocationId=self.event.nat_gateway_allocation_id)

    def _describe(self, nat_id: str) -> Optional[Dict[str, Any]]:
        gateways = self.ec2.describe_nat_gateways(NatGatewayIds=[nat_id]).get("NatGateways", [])
        return gateways[0] if gateways else None

    def _deleted(self) -> bool:
        gateway = self._describe(self.event.nat_gateway_aws_id)
        return gateway is None or gateway.get("State") == "deleted"


def _allocation(gateway: Dict[str, Any]) -> Dict[str, Any]:
    addresses = gateway.get("NatGatewayAddresses") or [{}]
    return addresses[0]


class NatCollection(CollectionAdapter):
    resource_type = "nat"

    def find(self) -> Iterable[NatEvent]:
        for gateway in paginate(self.ec2, "describe_nat_gateways", "NatGateways"):
            if gateway.get("State") in ("deleting", "deleted"):
                continue
            nat_id = gateway["NatGatewayId"]
            tags = from_tag_list(gateway.get("Tags"))
            routed = subnet_ids_of(route_tables_through(self.ec2, NAT_ROUTE_FILTER, nat_id))
            allocation = _allocation(gateway)
            yield self.component(
                NatEvent(
                    nat_gateway_aws_id=nat_id,
                    name=tags.get("Name"),
                    public_network_aws_id=gateway.get("SubnetId"),
                    routed_networks_aws_ids=routed,
                    nat_gateway_allocation_id=allocation.get("AllocationId"),
                    nat_gateway_allocation_ip=allocation.get("PublicIp"),
                    vpc_id=gateway.get("VpcId"),
                    tags=tags,
                )
            )
