"""Tests for the metric catalog and its label extractors."""

import pytest

from ceilometer_exporter.catalog import (
    NAMESPACE, CatalogEntry, LabelCardinalityError, MetricDescriptor, build_catalog, metric_names,
)
from ceilometer_exporter.lookup import UNKNOWN, LookupCache

from .conftest import FakeResourceClient, make_sample

FULL_METADATA = {
    'display_name': 'web-1',
    'device': 'vda',
    'flavor.name': 'm1.small',
    'instance_id': 'vm-1',
    'name': 'policy-1',
    'address': '10.0.0.5',
    'protocol_port': '443',
    'status': 'ACTIVE',
    'pool_id': 'pool-1',
}


@pytest.fixture
def lookup():
    client = FakeResourceClient(pools={'pool-1': 'frontend'}, instances={'vm-1': 'web-1'})
    return LookupCache(client, pools={'pool-1': 'frontend'}, instances={'vm-1': 'web-1'})


class TestCatalog:
    """Tests for the catalog table."""

    def test_every_entry_matches_its_descriptor(self, lookup):
        sample = make_sample('tenant/container', **FULL_METADATA)
        for meter, entry in build_catalog().items():
            values = entry.label_values(sample, lookup)
            assert len(values) == len(entry.descriptor.labelnames), meter
            assert all(isinstance(value, str) for value in values), meter

    def test_names_are_namespaced_and_unique(self):
        names = [entry.descriptor.name for entry in build_catalog().values()]
        assert all(name.startswith(f"{NAMESPACE}_") for name in names)
        assert len(names) == len(set(names))

    def test_metric_names_sorted(self):
        names = metric_names()
        assert names == sorted(build_catalog())
        assert 'cpu_util' in names and 'instance' in names

    def test_custom_namespace(self):
        catalog = build_catalog(namespace='ceilo')
        assert catalog['cpu'].descriptor.name == 'ceilo_cpu_nanoseconds'


class TestExtractors:
    """Tests for individual label extraction rules."""

    def test_instance_labels(self, lookup):
        entry = build_catalog()['cpu_util']
        sample = make_sample('vm-9', display_name='db-1')
        assert entry.label_values(sample, lookup) == ['vm-9', 'db-1']

    def test_missing_metadata_yields_empty_label(self, lookup):
        entry = build_catalog()['disk.read.bytes']
        assert entry.label_values(make_sample('vm-9'), lookup) == ['vm-9', '', '']

    def test_instance_flavor(self, lookup):
        entry = build_catalog()['instance']
        sample = make_sample('vm-1', display_name='web-1', **{'flavor.name': 'm1.large'})
        assert entry.label_values(sample, lookup) == ['vm-1', 'web-1', 'm1.large']

    def test_interface_resolves_instance_name(self, lookup):
        entry = build_catalog()['network.incoming.bytes']
        sample = make_sample('instance-0001-vm-1-tap123', instance_id='vm-1')
        assert entry.label_values(sample, lookup) == ['vm-1', 'web-1']

    def test_interface_without_instance_is_unknown(self, lookup):
        entry = build_catalog()['network.outgoing.packets']
        assert entry.label_values(make_sample('tap123'), lookup) == ['', UNKNOWN]
        assert lookup.client.get_calls == []

    def test_pool_member(self, lookup):
        entry = build_catalog()['network.services.lb.member']
        sample = make_sample('member-1', address='10.0.0.5', protocol_port='80', status='ACTIVE', pool_id='pool-1')
        assert entry.label_values(sample, lookup) == ['10.0.0.5:80', 'ACTIVE', 'frontend']

    def test_pool_traffic_looks_up_resource_id(self, lookup):
        entry = build_catalog()['network.services.lb.incoming.bytes']
        assert entry.label_values(make_sample('pool-1'), lookup) == ['frontend']
        assert entry.label_values(make_sample('pool-404'), lookup) == [UNKNOWN]

    def test_pool_and_vip_descriptors(self):
        catalog = build_catalog()
        assert catalog['network.services.lb.pool'].descriptor.name == f"{NAMESPACE}_loadbalancer_pool"
        assert catalog['network.services.lb.vip'].descriptor.name == f"{NAMESPACE}_loadbalancer_vip"

    def test_swift_container_id(self, lookup):
        entry = build_catalog()['storage.containers.objects']
        assert entry.label_values(make_sample('tenant-1/backups'), lookup) == ['backups']
        assert entry.label_values(make_sample('tenant-1/a/b'), lookup) == ['a/b']
        assert entry.label_values(make_sample('no-slash'), lookup) == ['']


class TestLabelCardinality:
    """Tests for the descriptor/extractor consistency check."""

    def test_mismatch_raises(self, lookup):
        entry = CatalogEntry(MetricDescriptor('bad', 'Bad metric', ('a', 'b')), lambda sample, lookup: ['only-one'])
        with pytest.raises(LabelCardinalityError):
            entry.label_values(make_sample('x'), lookup)
