"""Ceilometer samples as consumed by the collector"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)

GAUGE = 'gauge'
COUNTER = 'counter'
UNTYPED = 'untyped'

_SAMPLE_TYPES = {
    'gauge': GAUGE,
    'cumulative': COUNTER,
}


def flatten_metadata(metadata: Mapping[str, Any], prefix: str = '') -> Dict[str, str]:
    """Flatten nested resource metadata into dotted string keys"""
    flat = {}
    for key, value in (metadata or {}).items():
        full_key = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_metadata(value, prefix=f"{full_key}."))
        elif value is None:
            flat[full_key] = ''
        else:
            flat[full_key] = str(value)
    return flat


@dataclass(frozen=True)
class Sample:
    resource_id: str
    sample_type: str
    volume: float
    timestamp: str = ''
    metadata: Dict[str, str] = field(default_factory=dict)
    name: str = ''

    def meta(self, key: str) -> str:
        """Metadata value for key, empty string when absent"""
        return self.metadata.get(key, '')

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> 'Sample':
        """Build a sample from a /v2/meters/<meter> response item.

        Accepts both the old ``counter_*`` field names and the newer
        ``meter``/``type``/``volume`` ones.
        """
        volume = data.get('counter_volume', data.get('volume'))
        return cls(
            resource_id=data.get('resource_id') or '',
            sample_type=data.get('counter_type', data.get('type')) or '',
            volume=float(volume) if volume is not None else 0.0,
            timestamp=data.get('timestamp') or '',
            metadata=flatten_metadata(data.get('resource_metadata') or data.get('metadata') or {}),
            name=data.get('counter_name', data.get('meter')) or '',
        )


def deduplicate(samples: Iterable[Sample]) -> List[Sample]:
    """Keep the first sample seen for every resource id, preserving order"""
    unique = []
    seen = set()
    for sample in samples:
        if sample.resource_id not in seen:
            seen.add(sample.resource_id)
            unique.append(sample)
    return unique


def value_type_for(sample: Sample) -> str:
    """Map a Ceilometer sample type to the exposed value type"""
    value_type = _SAMPLE_TYPES.get(sample.sample_type)
    if value_type is None:
        logger.debug(f"Unknown sample type {sample.sample_type!r} in query for {sample.name}")
        return UNTYPED
    return value_type
