import logging
from typing import Iterable, Optional

from ..clients import compact, paginate
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, ResourceAdapter, require
from .ec2_common import DEFAULT_ROUTE, ensure_internet_gateway, ensure_route_table, routes_through

logger = logging.getLogger(__name__)


class NetworkEvent(ResourceEvent):
    network_aws_id: Optional[str] = None
    range: Optional[str] = None  # Subnet CIDR
    is_public: Optional[bool] = None
    internet_gateway: Optional[str] = None
    internet_gateway_aws_id: Optional[str] = None
    availability_zone: Optional[str] = None
    vpc: Optional[str] = None
    vpc_id: Optional[str] = None


class NetworkAdapter(ResourceAdapter):
    """A subnet, optionally made public through the VPC's internet gateway."""

    resource_type = "network"
    event_model = NetworkEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID),
        *ENVELOPE_REQUIREMENTS,
        require("range", "Network subnet invalid", on=[Action.CREATE]),
        require("network_aws_id", "Network aws id invalid", on=[Action.DELETE]),
    ]

    def create(self) -> None:
        resp = self.ec2.create_subnet(
            **compact(
                VpcId=self.event.vpc_id,
                CidrBlock=self.event.range,
                AvailabilityZone=self.event.availability_zone,
            )
        )
        subnet = resp["Subnet"]
        self.event.network_aws_id = subnet["SubnetId"]
        self.event.availability_zone = subnet.get("AvailabilityZone")
        logger.info("Created subnet %s in %s", self.event.network_aws_id, self.event.vpc_id)

        if self.event.is_public:
            self._make_public()

        self.tag(self.event.network_aws_id)

    def _make_public(self) -> None:
        gateway_id = ensure_internet_gateway(self.ec2, self.event.vpc_id)
        self.event.internet_gateway_aws_id = gateway_id

        table = ensure_route_table(self.ec2, self.event.vpc_id, self.event.network_aws_id)
        if not routes_through(table, "GatewayId", gateway_id):
            self.ec2.create_route(
                RouteTableId=table["RouteTableId"],
                DestinationCidrBlock=DEFAULT_ROUTE,
                GatewayId=gateway_id,
            )

        self.ec2.modify_subnet_attribute(
            SubnetId=self.event.network_aws_id,
            MapPublicIpOnLaunch={"Value": True},
        )

    def delete(self) -> None:
        self.poll(
            self._interfaces_released,
            self.config.polling.network_interfaces,
            f"network interfaces of {self.event.network_aws_id} to be released",
        )
        self.ec2.delete_subnet(SubnetId=self.event.network_aws_id)
        logger.info("Deleted subnet %s", self.event.network_aws_id)

    def _interfaces_released(self) -> bool:
        resp = self.ec2.describe_network_interfaces(
            Filters=[{"Name": "subnet-id", "Values": [self.event.network_aws_id]}]
        )
        return not resp.get("NetworkInterfaces")


class NetworkCollection(CollectionAdapter):
    resource_type = "network"

    def find(self) -> Iterable[NetworkEvent]:
        for subnet in paginate(self.ec2, "describe_subnets", "Subnets"):
            tags = from_tag_list(subnet.get("Tags"))
            yield self.component(
                NetworkEvent(
                    network_aws_id=subnet["SubnetId"],
                    name=tags.get("Name"),
                    range=subnet.get("CidrBlock"),
                    is_public=subnet.get("MapPublicIpOnLaunch", False),
                    availability_zone=subnet.get("AvailabilityZone"),
                    vpc_id=subnet.get("VpcId"),
                    tags=tags,
                )
            )
