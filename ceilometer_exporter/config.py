"""Exporter configuration from command line flags and environment variables"""

import argparse
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional, Sequence, Tuple

DEFAULT_ENABLED_METRICS = '*'

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_UNIT_SECONDS = {'h': 3600.0, 'm': 60.0, 's': 1.0, 'ms': 0.001}


def parse_duration(value: str) -> timedelta:
    """Parse '90s', '5m', '1h30m' or a bare number of seconds"""
    text = str(value).strip()
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if not text or position != len(text):
        raise argparse.ArgumentTypeError(f"invalid duration {value!r}")
    return timedelta(seconds=seconds)


def parse_patterns(value: str) -> Tuple[str, ...]:
    """Split a comma-separated pattern list, dropping blank entries"""
    return tuple(part.strip() for part in (value or '').split(',') if part.strip())


def parse_bind_addr(value: str) -> Tuple[str, int]:
    """Split 'host:port' (host may be empty) into its parts"""
    host, sep, port = value.rpartition(':')
    if not sep or not port.isdigit():
        raise argparse.ArgumentTypeError(f"invalid bind address {value!r}, expected [host]:port")
    return host.strip('[]') or '0.0.0.0', int(port)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected zero or a positive integer, got {value!r}")
    return number


@dataclass(frozen=True)
class ExporterConfig:
    log_level: str = 'info'
    bind_host: str = '0.0.0.0'
    bind_port: int = 9181
    metrics_path: str = '/metrics'
    max_results: int = 100
    max_metric_age: timedelta = timedelta(minutes=5)
    enabled_metrics: Tuple[str, ...] = (DEFAULT_ENABLED_METRICS,)
    disabled_metrics: Tuple[str, ...] = ()
    scrape_timeout: timedelta = timedelta(seconds=30)
    request_timeout: timedelta = timedelta(seconds=10)
    max_workers: int = 0
    list_metrics: bool = False


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ceilometer-exporter',
        description='Prometheus exporter for OpenStack Ceilometer samples',
    )
    default_level = 'debug' if environ.get('DEBUG_MODE', '').lower() in ('true', '1', 'yes') else 'info'
    parser.add_argument('--log-level', default=environ.get('LOG_LEVEL', default_level),
                        choices=['debug', 'info', 'warning', 'error', 'critical'], type=str.lower,
                        help='log level')
    parser.add_argument('--bind-addr', default=environ.get('BIND_ADDR', ':9181'), type=parse_bind_addr,
                        help='bind address for the metrics server')
    parser.add_argument('--metrics-path', default=environ.get('METRICS_PATH', '/metrics'),
                        help='path to metrics endpoint')
    parser.add_argument('--max-results', default=environ.get('MAX_RESULTS', '100'), type=_positive_int,
                        help='maximum number of results to fetch for any metric')
    parser.add_argument('--max-metric-age', default=environ.get('MAX_METRIC_AGE', '5m'), type=parse_duration,
                        help='maximum age of metrics to retrieve')
    parser.add_argument('--enabled-metrics', default=environ.get('ENABLED_METRICS', DEFAULT_ENABLED_METRICS),
                        type=parse_patterns,
                        help='comma-separated list of metrics to enable (supports globbing)')
    parser.add_argument('--disabled-metrics', default=environ.get('DISABLED_METRICS', ''), type=parse_patterns,
                        help='comma-separated list of metrics to disable (supports globbing)')
    parser.add_argument('--scrape-timeout', default=environ.get('SCRAPE_TIMEOUT', '30s'), type=parse_duration,
                        help='deadline for a whole collection cycle')
    parser.add_argument('--request-timeout', default=environ.get('REQUEST_TIMEOUT', '10s'), type=parse_duration,
                        help='timeout for a single OpenStack API request')
    parser.add_argument('--max-workers', default=environ.get('MAX_WORKERS', '0'), type=_non_negative_int,
                        help='concurrent metric queries (0 = one per enabled metric)')
    parser.add_argument('--list-metrics', action='store_true',
                        help='show list of metrics and exit (cumulative meters are exposed with a _total suffix)')
    return parser


def load_config(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> ExporterConfig:
    """Build the process-wide configuration once at startup"""
    environ = os.environ if environ is None else environ
    args = build_parser(environ).parse_args(argv)
    bind_host, bind_port = args.bind_addr
    metrics_path = args.metrics_path if args.metrics_path.startswith('/') else f"/{args.metrics_path}"
    return ExporterConfig(
        log_level=args.log_level,
        bind_host=bind_host,
        bind_port=bind_port,
        metrics_path=metrics_path,
        max_results=args.max_results,
        max_metric_age=args.max_metric_age,
        enabled_metrics=args.enabled_metrics,
        disabled_metrics=args.disabled_metrics,
        scrape_timeout=args.scrape_timeout,
        request_timeout=args.request_timeout,
        max_workers=args.max_workers,
        list_metrics=args.list_metrics,
    )
