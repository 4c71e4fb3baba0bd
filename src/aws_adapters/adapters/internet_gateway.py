import logging
from typing import Optional

from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, ResourceAdapter, require
from .ec2_common import DEFAULT_ROUTE, find_internet_gateway, route_tables_through

logger = logging.getLogger(__name__)


class InternetGatewayEvent(ResourceEvent):
    internet_gateway_aws_id: Optional[str] = None
    vpc: Optional[str] = None
    vpc_id: Optional[str] = None


class InternetGatewayAdapter(ResourceAdapter):
    resource_type = "internet_gateway"
    event_model = InternetGatewayEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID),
        *ENVELOPE_REQUIREMENTS,
        require(
            "internet_gateway_aws_id",
            "Internet Gateway aws id invalid",
            on=[Action.DELETE],
        ),
    ]

    def create(self) -> None:
        existing = find_internet_gateway(self.ec2, self.event.vpc_id)
        if existing:
            # A VPC holds a single gateway; reuse it as is.
            logger.info("Reusing internet gateway %s of %s", existing, self.event.vpc_id)
            self.event.internet_gateway_aws_id = existing
            return

        resp = self.ec2.create_internet_gateway()
        gateway_id = resp["InternetGateway"]["InternetGatewayId"]
        self.ec2.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=self.event.vpc_id)
        self.event.internet_gateway_aws_id = gateway_id
        logger.info("Created internet gateway %s for %s", gateway_id, self.event.vpc_id)
        self.tag(gateway_id)

    def delete(self) -> None:
        gateway_id = self.event.internet_gateway_aws_id

        # Dependents first: route tables routing through the gateway.
        for table in route_tables_through(self.ec2, "route.gateway-id", gateway_id):
            main = False
            for association in table.get("Associations", []):
                if association.get("Main"):
                    main = True
                    continue
                self.ec2.disassociate_route_table(
                    AssociationId=association["RouteTableAssociationId"]
                )
            if main:
                # The main table cannot be deleted; drop the route instead.
                self.ec2.delete_route(
                    RouteTableId=table["RouteTableId"], DestinationCidrBlock=DEFAULT_ROUTE
                )
            else:
                self.ec2.delete_route_table(RouteTableId=table["RouteTableId"])

        self.ec2.detach_internet_gateway(InternetGatewayId=gateway_id, VpcId=self.event.vpc_id)
        self.ec2.delete_internet_gateway(InternetGatewayId=gateway_id)
        logger.info("Deleted internet gateway %s", gateway_id)
