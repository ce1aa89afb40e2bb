"""Enable/disable filtering of metric names with simple '*' globs."""

import re
from functools import lru_cache
from typing import Dict, Sequence, TypeVar

T = TypeVar('T')


@lru_cache(maxsize=256)
def _compile(pattern: str):
    """Translate a glob where only '*' is special into an anchored regex"""
    return re.compile('.*'.join(re.escape(part) for part in pattern.split('*')), re.DOTALL)


def glob_match(pattern: str, name: str) -> bool:
    """Check whether name matches pattern ('*' matches any run of characters)"""
    if pattern == '*':
        return True
    return _compile(pattern).fullmatch(name) is not None


def should_include(name: str, enabled: Sequence[str], disabled: Sequence[str]) -> bool:
    """Decide whether a metric is active.

    Only the first enabled pattern that matches opens the disabled check;
    a metric no enabled pattern matches is always excluded.
    """
    for enabled_pattern in enabled:
        if glob_match(enabled_pattern, name):
            for disabled_pattern in disabled:
                if glob_match(disabled_pattern, name):
                    return False
            return True
    return False


def filter_catalog(catalog: Dict[str, T], enabled: Sequence[str], disabled: Sequence[str]) -> Dict[str, T]:
    """Narrow a catalog down to the active metric names"""
    return {name: entry for name, entry in catalog.items() if should_include(name, enabled, disabled)}
