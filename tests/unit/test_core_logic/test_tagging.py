from aws_adapters.core_logic.tagging import from_tag_list, tags_match, to_tag_list


def test_to_tag_list_is_sorted_by_key():
    assert to_tag_list({"b": "2", "a": "1"}) == [
        {"Key": "a", "Value": "1"},
        {"Key": "b", "Value": "2"},
    ]


def test_from_tag_list_handles_missing_tags():
    assert from_tag_list(None) == {}
    assert from_tag_list([{"Key": "Name", "Value": "web"}, {"Key": "empty"}]) == {
        "Name": "web",
        "empty": "",
    }


def test_tags_match():
    tags = {"service": "svc-1", "env": "prod"}
    assert tags_match({}, tags)
    assert tags_match(None, tags)
    assert tags_match({"service": "svc-1"}, tags)
    assert not tags_match({"service": "svc-2"}, tags)
    assert not tags_match({"owner": "ops"}, tags)
