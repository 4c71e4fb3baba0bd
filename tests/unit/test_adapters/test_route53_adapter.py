import pytest

from aws_adapters.dispatcher import handle_event
from aws_adapters.errors import VPC_ID_INVALID


def record_set(name, type_, values, ttl=300):
    return {
        "Name": name,
        "Type": type_,
        "TTL": ttl,
        "ResourceRecords": [{"Value": v} for v in values],
    }


OBSERVED = {
    "ResourceRecordSets": [
        record_set("example.com.", "NS", ["ns-1.awsdns-00.com."], 172800),
        record_set("example.com.", "SOA", ["ns-1.awsdns-00.com. awsdns-hostmaster.amazon.com. 1 7200 900 1209600 86400"], 900),
        record_set("www.example.com.", "A", ["10.0.0.1"]),
        record_set("old.example.com.", "CNAME", ["www.example.com"]),
        {
            "Name": "cdn.example.com.",
            "Type": "A",
            "AliasTarget": {"HostedZoneId": "Z2FDTNDATAQYW2", "DNSName": "d1.cloudfront.net.", "EvaluateTargetHealth": False},
        },
    ]
}


@pytest.fixture
def zone_body(envelope):
    return {**envelope, "name": "example.com", "hosted_zone_id": "/hostedzone/Z1"}


def test_update_upserts_and_deletes(zone_body, provider):
    zone_body["records"] = [
        {"entry": "www.example.com", "type": "A", "values": ["10.0.0.2"], "ttl": 300},
        {"entry": "api.example.com", "type": "A", "values": ["10.0.0.3"], "ttl": 60},
    ]
    route53 = provider.respond("route53", list_resource_record_sets=OBSERVED)

    response = handle_event("route53.update.aws", zone_body, authenticate=provider)

    assert response.state == "completed"
    changes = route53.params("change_resource_record_sets")[0]["ChangeBatch"]["Changes"]
    assert [(c["Action"], c["ResourceRecordSet"]["Name"]) for c in changes] == [
        ("DELETE", "old.example.com."),
        ("UPSERT", "api.example.com"),
        ("UPSERT", "www.example.com"),
    ]
    assert changes[2]["ResourceRecordSet"]["ResourceRecords"] == [{"Value": "10.0.0.2"}]


def test_update_without_changes_sends_nothing(zone_body, provider):
    zone_body["records"] = [
        {"entry": "www.example.com", "type": "A", "values": ["10.0.0.1"], "ttl": 300},
        {"entry": "old.example.com", "type": "CNAME", "values": ["www.example.com"], "ttl": 300},
    ]
    route53 = provider.respond("route53", list_resource_record_sets=OBSERVED)

    handle_event("route53.update.aws", zone_body, authenticate=provider)

    assert route53.names() == ["list_resource_record_sets"]


def test_delete_clears_records_but_not_soa_or_ns(zone_body, provider):
    route53 = provider.respond("route53", list_resource_record_sets=OBSERVED)

    response = handle_event("route53.delete.aws", zone_body, authenticate=provider)

    assert response.state == "completed"
    changes = route53.params("change_resource_record_sets")[0]["ChangeBatch"]["Changes"]
    assert {c["Action"] for c in changes} == {"DELETE"}
    assert sorted((c["ResourceRecordSet"]["Name"], c["ResourceRecordSet"]["Type"]) for c in changes) == [
        ("old.example.com.", "CNAME"),
        ("www.example.com.", "A"),
    ]
    assert route53.names()[-1] == "delete_hosted_zone"


def test_private_zone_needs_vpc(envelope, provider):
    body = {**envelope, "name": "internal.example", "private": True}

    response = handle_event("route53.create.aws", body, authenticate=provider)

    assert response.body["error"] == VPC_ID_INVALID
    assert provider.call_count() == 0


def test_create_private_zone(envelope, provider):
    body = {**envelope, "name": "internal.example", "private": True, "vpc_id": "vpc-1", "tags": {"env": "dev"}}
    route53 = provider.respond(
        "route53",
        create_hosted_zone={"HostedZone": {"Id": "/hostedzone/Z9", "Name": "internal.example."}},
        list_resource_record_sets={"ResourceRecordSets": []},
    )

    response = handle_event("route53.create.aws", body, authenticate=provider)

    assert response.state == "completed"
    assert response.body["hosted_zone_id"] == "/hostedzone/Z9"
    create = route53.params("create_hosted_zone")[0]
    assert create["VPC"] == {"VPCRegion": "eu-west-1", "VPCId": "vpc-1"}
    assert route53.params("change_tags_for_resource")[0]["ResourceId"] == "Z9"


def test_record_type_is_sent_upper_case(zone_body, provider):
    zone_body["records"] = [
        {"entry": "www.example.com", "type": "a", "values": ["10.0.0.1"], "ttl": 300},
        {"entry": "old.example.com", "type": "cname", "values": ["www.example.com"], "ttl": 300},
        {"entry": "api.example.com", "type": "a", "values": ["10.0.0.3"], "ttl": 60},
    ]
    route53 = provider.respond("route53", list_resource_record_sets=OBSERVED)

    handle_event("route53.update.aws", zone_body, authenticate=provider)

    changes = route53.params("change_resource_record_sets")[0]["ChangeBatch"]["Changes"]
    assert [(c["Action"], c["ResourceRecordSet"]["Type"]) for c in changes] == [("UPSERT", "A")]


def test_records_are_read_from_every_page(zone_body, provider):
    route53 = provider.respond_pages(
        "route53",
        "list_resource_record_sets",
        {"ResourceRecordSets": OBSERVED["ResourceRecordSets"][:3]},
        {"ResourceRecordSets": [record_set("old.example.com.", "CNAME", ["www.example.com"])]},
    )

    response = handle_event("route53.delete.aws", zone_body, authenticate=provider)

    assert response.state == "completed"
    changes = route53.params("change_resource_record_sets")[0]["ChangeBatch"]["Changes"]
    assert [(c["Action"], c["ResourceRecordSet"]["Name"]) for c in changes] == [
        ("DELETE", "www.example.com."),
        ("DELETE", "old.example.com."),
    ]
    assert route53.names()[-1] == "delete_hosted_zone"
