#!/usr/bin/env python3
"""
OpenStack Ceilometer Exporter for Prometheus
Polls Ceilometer for recent samples and re-exposes them as Prometheus metrics
"""

import logging
import os
import signal
import sys
from typing import Mapping, Optional, Sequence
from wsgiref.simple_server import WSGIRequestHandler, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer

from . import __version__
from .catalog import build_catalog, metric_names
from .client import MeteringClient, OpenStackError, ResourceClient, authenticate
from .collector import CeilometerCollector, ScrapeOrchestrator
from .config import ExporterConfig, load_config
from .filters import filter_catalog
from .lookup import LookupCache

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] %(message)s'

logger = logging.getLogger(__name__)

INDEX_PAGE = """<html>
<head><title>Openstack Ceilometer Exporter</title></head>
<body>
<h1>Openstack Ceilometer Exporter</h1>
<p><a href='{metrics_path}'>Metrics</a></p>
<p>Cumulative meters are exposed as counters, with a <code>_total</code> suffix on the listed name.</p>
</body>
</html>
"""


class QuietHandler(WSGIRequestHandler):
    """Request handler logging access lines at debug level instead of stderr"""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def setup_logging(level: str):
    """Configure root logging for the process"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def make_app(registry: CollectorRegistry, metrics_path: str):
    """WSGI app serving metrics_path, a landing page at / and 404 elsewhere"""
    metrics_app = make_wsgi_app(registry)
    index = INDEX_PAGE.format(metrics_path=metrics_path).encode('utf-8')

    def app(environ, start_response):
        path = environ.get('PATH_INFO') or '/'
        if path == metrics_path:
            return metrics_app(environ, start_response)
        if path == '/':
            start_response('200 OK', [('Content-Type', 'text/html; charset=utf-8')])
            return [index]
        start_response('404 Not Found', [('Content-Type', 'text/plain')])
        return [b'Not Found']

    return app


def build_collector(config: ExporterConfig, environ: Mapping[str, str]) -> CeilometerCollector:
    """Authenticate, warm the lookup cache and wire up the collector.

    Any failure here is fatal: the exporter cannot run without working
    credentials and the initial pool/instance listings.
    """
    session = authenticate(environ, timeout=config.request_timeout.total_seconds())
    metering = MeteringClient(session)
    lookup = LookupCache.populate(ResourceClient(session))

    catalog = filter_catalog(build_catalog(), config.enabled_metrics, config.disabled_metrics)
    logger.info(f"Enabled metrics: {sorted(catalog)}")
    if not catalog:
        logger.warning("No metrics enabled, only bookkeeping metrics will be exported")

    return CeilometerCollector(ScrapeOrchestrator(metering, catalog, lookup, config))


def display_metrics_list(out=None):
    """Print every available meter name, one per line"""
    out = out or sys.stdout
    for name in metric_names():
        print(name, file=out)


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}")
    sys.exit(0)


def run(config: ExporterConfig, environ: Mapping[str, str]):
    """Register the collector and serve until interrupted"""
    registry = CollectorRegistry()
    registry.register(build_collector(config, environ))

    httpd = make_server(config.bind_host, config.bind_port, make_app(registry, config.metrics_path),
                        ThreadingWSGIServer, handler_class=QuietHandler)
    logger.info(f"Ceilometer Exporter {__version__} started on {config.bind_host}:{config.bind_port}")
    logger.info(f"Metrics available at http://{config.bind_host}:{config.bind_port}{config.metrics_path}")
    try:
        httpd.serve_forever()
    finally:
        logger.info("Shutting down exporter...")
        httpd.server_close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    config = load_config(argv)
    setup_logging(config.log_level)

    if config.list_metrics:
        display_metrics_list()
        return 0

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run(config, os.environ)
    except KeyboardInterrupt:
        logger.info("Exporter stopped by user")
    except OpenStackError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
