"""Shared fakes and fixtures for the exporter tests."""

import threading

import pytest

from ceilometer_exporter.client import OpenStackError
from ceilometer_exporter.lookup import LookupCache
from ceilometer_exporter.samples import Sample


def make_sample(resource_id, volume=1.0, sample_type='gauge', meter='cpu_util', **metadata):
    return Sample(
        resource_id=resource_id,
        sample_type=sample_type,
        volume=volume,
        timestamp='2026-10-18T12:00:00',
        metadata={key: str(value) for key, value in metadata.items()},
        name=meter,
    )


class FakeResourceClient:
    """In-memory pool/instance listings with call tracking"""

    def __init__(self, pools=None, instances=None, fail_listing=False):
        self.pools = dict(pools or {})
        self.instances = dict(instances or {})
        self.fail_listing = fail_listing
        self.get_calls = []
        self._lock = threading.Lock()

    def list_pools(self):
        if self.fail_listing:
            raise OpenStackError("pool listing failed")
        return iter(self.pools.items())

    def list_instances(self):
        if self.fail_listing:
            raise OpenStackError("instance listing failed")
        return iter(self.instances.items())

    def _get(self, kind, table, resource_id):
        with self._lock:
            self.get_calls.append((kind, resource_id))
        if resource_id not in table:
            raise OpenStackError(f"{kind} {resource_id} not found")
        return table[resource_id]

    def get_pool(self, pool_id):
        return self._get('pool', self.pools, pool_id)

    def get_instance(self, instance_id):
        return self._get('instance', self.instances, instance_id)


class FakeMeteringClient:
    """Returns canned samples (or raises) per meter name"""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.queries = []
        self._lock = threading.Lock()

    def query(self, meter, field, op, value, limit):
        with self._lock:
            self.queries.append({'meter': meter, 'field': field, 'op': op, 'value': value, 'limit': limit})
        response = self.responses.get(meter, [])
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return list(response)


@pytest.fixture
def resource_client():
    return FakeResourceClient()


@pytest.fixture
def empty_lookup(resource_client):
    return LookupCache(resource_client)
