from typing import Dict, Iterable, List, Mapping, Optional


def to_tag_list(tags: Mapping[str, str]) -> List[Dict[str, str]]:
    """{"k": "v"} -> [{"Key": "k", "Value": "v"}], sorted by key for stable requests."""
    return [{"Key": k, "Value": tags[k]} for k in sorted(tags)]


def from_tag_list(items: Optional[Iterable[Mapping[str, str]]]) -> Dict[str, str]:
    return {item["Key"]: item.get("Value", "") for item in items or []}


def tags_match(filters: Optional[Mapping[str, str]], tags: Mapping[str, str]) -> bool:
    """True when every filter key/value pair is present in `tags`.

    An empty or missing filter matches everything.
    """
    for key, value in (filters or {}).items():
        if tags.get(key) != value:
            return False
    return True
