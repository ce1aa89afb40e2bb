"""Static catalog of exported Ceilometer meters.

Every entry pairs a metric descriptor with a label extractor. Extractors
are plain functions of ``(sample, lookup)`` returning the label values in
descriptor order; the lookup cache is passed in explicitly so entries hold
no state of their own.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .lookup import LookupCache
from .samples import Sample

NAMESPACE = 'openstack_ceilometer'

Extractor = Callable[[Sample, LookupCache], List[str]]


class LabelCardinalityError(Exception):
    """An extractor returned a label list that does not fit its descriptor"""


def make_fq_name(metric: str, namespace: str = NAMESPACE) -> str:
    return f"{namespace}_{metric}"


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    documentation: str
    labelnames: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalogEntry:
    descriptor: MetricDescriptor
    extract: Extractor

    def label_values(self, sample: Sample, lookup: LookupCache) -> List[str]:
        """Run the extractor and check its output against the descriptor"""
        values = self.extract(sample, lookup)
        if len(values) != len(self.descriptor.labelnames):
            raise LabelCardinalityError(
                f"{self.descriptor.name} expects labels {list(self.descriptor.labelnames)}, got {values!r}"
            )
        return values


# Label extractors

def instance_labels(sample, lookup):
    return [sample.resource_id, sample.meta('display_name')]


def instance_device_labels(sample, lookup):
    return [sample.resource_id, sample.meta('display_name'), sample.meta('device')]


def instance_flavor_labels(sample, lookup):
    return [sample.resource_id, sample.meta('display_name'), sample.meta('flavor.name')]


def interface_instance_labels(sample, lookup):
    """Interface samples carry the owning instance id in metadata only"""
    instance_id = sample.meta('instance_id')
    return [instance_id, lookup.lookup_instance(instance_id)]


def named_resource_labels(sample, lookup):
    return [sample.meta('name')]


def pool_member_labels(sample, lookup):
    member = f"{sample.meta('address')}:{sample.meta('protocol_port')}"
    return [member, sample.meta('status'), lookup.lookup_pool(sample.meta('pool_id'))]


def pool_labels(sample, lookup):
    return [lookup.lookup_pool(sample.resource_id)]


def container_labels(sample, lookup):
    # Swift resource ids look like "<project_id>/<container>"
    return [sample.resource_id.partition('/')[2]]


INSTANCE = ('instance_id', 'instance_name')
INSTANCE_DEVICE = ('instance_id', 'instance_name', 'device')

# meter name -> (metric suffix, help text, label names, extractor)
_DEFINITIONS = {
    # Hardware
    'cpu': ('cpu_nanoseconds', 'Consumed CPU time (nanoseconds)', INSTANCE, instance_labels),
    'cpu_util': ('cpu_percent', 'CPU utilization (percent)', INSTANCE, instance_labels),
    'disk.allocation': ('disk_allocation', 'Disk allocation', INSTANCE, instance_labels),
    'disk.capacity': ('disk_capacity', 'Disk capacity', INSTANCE_DEVICE, instance_device_labels),
    'disk.ephemeral.size': ('disk_ephemeral_size', 'Size of ephemeral disk', INSTANCE, instance_labels),
    'disk.read.bytes': ('disk_read_bytes', 'Disk bytes read', INSTANCE_DEVICE, instance_device_labels),
    'disk.read.requests': ('disk_read_requests', 'Disk read requests', INSTANCE_DEVICE, instance_device_labels),
    'disk.root.size': ('disk_root_size', 'Root disk size', INSTANCE, instance_labels),
    'disk.usage': ('disk_usage', 'Disk usage', INSTANCE, instance_labels),
    'disk.write.bytes': ('disk_write_bytes', 'Disk written bytes', INSTANCE_DEVICE, instance_device_labels),
    'disk.write.requests': ('disk_write_requests', 'Disk write requests', INSTANCE_DEVICE, instance_device_labels),
    'memory.usage': ('memory_usage', 'Memory utilization', INSTANCE, instance_labels),
    'memory': ('memory', 'Memory allocation', INSTANCE, instance_labels),
    'memory.resident': ('memory_resident', 'Resident memory utilization', INSTANCE, instance_labels),
    'network.incoming.bytes': ('incoming_bytes', 'Instance incoming network (bytes)',
                               INSTANCE, interface_instance_labels),
    'network.incoming.packets': ('incoming_packets', 'Instance incoming network (packets)',
                                 INSTANCE, interface_instance_labels),
    'network.outgoing.bytes': ('outgoing_bytes', 'Instance outgoing network (bytes)',
                               INSTANCE, interface_instance_labels),
    'network.outgoing.packets': ('outgoing_packets', 'Instance outgoing network (packets)',
                                 INSTANCE, interface_instance_labels),
    # Network
    'network.services.firewall.policy': ('firewall_policy', 'Firewall policy', ('name',), named_resource_labels),
    'network.services.lb.pool': ('loadbalancer_pool', 'Load balancer pool', ('name',), named_resource_labels),
    'network.services.lb.vip': ('loadbalancer_vip', 'Load balancer virtual IP', ('name',), named_resource_labels),
    'network.services.lb.member': ('loadbalancer_pool_member', 'Load balancer pool member',
                                   ('member', 'status', 'pool'), pool_member_labels),
    'network.services.lb.incoming.bytes': ('loadbalancer_pool_bytes_in', 'Load balancer pool bytes-in',
                                           ('pool',), pool_labels),
    'network.services.lb.outgoing.bytes': ('loadbalancer_pool_bytes_out', 'Load balancer pool bytes-out',
                                           ('pool',), pool_labels),
    'network.services.lb.active.connections': ('loadbalancer_pool_active_connections',
                                               'Load balancer pool active connections', ('pool',), pool_labels),
    'network.services.lb.total.connections': ('loadbalancer_pool_total_connections',
                                              'Load balancer pool total connections', ('pool',), pool_labels),
    # Swift
    'storage.containers.objects': ('swift_objects', 'Swift container objects', ('container_id',), container_labels),
    'storage.containers.objects.size': ('swift_objects_size', 'Swift container size (bytes)',
                                        ('container_id',), container_labels),
    # Usage
    'instance': ('instance', 'Instances', ('instance_id', 'instance_name', 'flavor'), instance_flavor_labels),
}


def build_catalog(namespace: str = NAMESPACE) -> Dict[str, CatalogEntry]:
    """Build the full meter name -> catalog entry table"""
    catalog = {}
    for meter, (suffix, documentation, labelnames, extract) in _DEFINITIONS.items():
        descriptor = MetricDescriptor(make_fq_name(suffix, namespace), documentation, tuple(labelnames))
        catalog[meter] = CatalogEntry(descriptor, extract)
    return catalog


def metric_names() -> List[str]:
    """Sorted list of every meter the exporter knows about"""
    return sorted(_DEFINITIONS)
