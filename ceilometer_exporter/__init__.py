"""Prometheus exporter for OpenStack Ceilometer"""

__version__ = '1.0.0'
