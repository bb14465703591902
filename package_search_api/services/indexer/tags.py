import re
from typing import Iterable, List

_CONTROL_CHARS = re.compile(r'[\x00-\x1f]+')
_SEPARATORS = re.compile(r'[\s-]+')

def strip_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub('', text)

def normalize_tag(tag: str) -> str:
    """Lower-case a tag and collapse whitespace/hyphen runs into one space."""
    return _SEPARATORS.sub(' ', strip_control_chars(tag).lower()).strip()

def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Normalize tags, keeping the first occurrence of each normalized value."""
    normalized = []
    seen = set()
    for tag in tags:
        value = normalize_tag(tag)
        if value and value not in seen:
            seen.add(value)
            normalized.append(value)
    return normalized
