"""
Scrape orchestration for the Ceilometer exporter.

Each collection cycle fans out one query per active meter onto a thread
pool, turns the returned samples into observations and finishes with
per-meter bookkeeping (success, duration, result size) plus the duration
of the whole cycle. Failures of a single meter never abort the cycle; they
are reported through its bookkeeping metrics instead.
"""

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, NamedTuple, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, UnknownMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .catalog import CatalogEntry, LabelCardinalityError, MetricDescriptor, make_fq_name
from .config import ExporterConfig
from .lookup import LookupCache, UnknownLookupKindError
from .samples import COUNTER, GAUGE, UNTYPED, Sample, deduplicate, value_type_for

logger = logging.getLogger(__name__)

QUERY_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'

SCRAPE_SUCCESS = MetricDescriptor(
    make_fq_name('metric_scrape_success'), 'Indicates if the metric was successfully scraped', ('metric',))
SCRAPE_DURATION = MetricDescriptor(
    make_fq_name('metric_scrape_duration_seconds'), 'The time taken to scrape the metric', ('metric',))
SCRAPE_RESULT_SIZE = MetricDescriptor(
    make_fq_name('metric_scrape_result_size'), 'Number of results returned by the metric query', ('metric',))
TOTAL_SCRAPE_DURATION = MetricDescriptor(
    make_fq_name('total_scrape_duration_seconds'), 'Time taken for entire scrape')

BOOKKEEPING_DESCRIPTORS = (SCRAPE_SUCCESS, SCRAPE_DURATION, SCRAPE_RESULT_SIZE, TOTAL_SCRAPE_DURATION)

_FAMILY_TYPES = {
    GAUGE: GaugeMetricFamily,
    COUNTER: CounterMetricFamily,
    UNTYPED: UnknownMetricFamily,
}


@dataclass(frozen=True)
class ScrapeOutcome:
    metric: str
    success: bool
    duration: float
    result_size: int = 0


class Observation(NamedTuple):
    descriptor: MetricDescriptor
    value_type: str
    value: float
    label_values: Tuple[str, ...] = ()


@dataclass
class CycleResult:
    observations: List[Observation] = field(default_factory=list)
    outcomes: Dict[str, ScrapeOutcome] = field(default_factory=dict)
    duration: float = 0.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapeOrchestrator:
    """Runs collection cycles over the active part of the catalog"""

    def __init__(self, client, catalog: Dict[str, CatalogEntry], lookup: LookupCache,
                 config: ExporterConfig = ExporterConfig(), now: Callable[[], datetime] = _utcnow):
        self.client = client
        self.catalog = dict(catalog)
        self.lookup = lookup
        self.max_results = config.max_results
        self.max_metric_age: timedelta = config.max_metric_age
        self.scrape_timeout = config.scrape_timeout.total_seconds()
        self.max_workers = config.max_workers
        self.now = now

    def build_query(self) -> Dict[str, object]:
        """Query for samples newer than max_metric_age, capped at max_results"""
        since = self.now() - self.max_metric_age
        return {
            'field': 'timestamp',
            'op': 'gt',
            'value': since.strftime(QUERY_TIME_FORMAT),
            'limit': self.max_results,
        }

    def sample_to_observation(self, sample: Sample, entry: CatalogEntry) -> Observation:
        return Observation(
            descriptor=entry.descriptor,
            value_type=value_type_for(sample),
            value=float(sample.volume),
            label_values=tuple(entry.label_values(sample, self.lookup)),
        )

    def scrape_metric(self, name: str, entry: CatalogEntry) -> Tuple[ScrapeOutcome, List[Observation]]:
        """Query one meter and convert its samples into observations"""
        start = time.monotonic()
        query = self.build_query()
        logger.debug(f"Querying for {name}: {query}")
        try:
            samples = self.client.query(name, **query)
        except Exception as e:
            logger.warning(f"Failed to scrape Ceilometer meter {name!r}: {e}")
            return ScrapeOutcome(name, False, time.monotonic() - start), []

        if not samples:
            # The query itself succeeded even though nothing was reported
            logger.warning(f"Query for {name} returned no results!")
            return ScrapeOutcome(name, True, time.monotonic() - start), []

        if len(samples) == self.max_results:
            logger.warning(
                f"Query for {name} returned max number of results ({self.max_results}), data may be truncated")

        unique = deduplicate(samples)
        logger.debug(f"Query for {name} returned {len(samples)} results, {len(unique)} remain after deduplication")
        observations = [self.sample_to_observation(sample, entry) for sample in unique]
        return ScrapeOutcome(name, True, time.monotonic() - start, len(unique)), observations

    def run_cycle(self) -> CycleResult:
        """Scrape every active meter concurrently and join on all of them.

        Meters that have not finished when scrape_timeout runs out are
        reported as failed; whatever they produce later is dropped.
        """
        start = time.monotonic()
        result = CycleResult()
        names = sorted(self.catalog)

        if names:
            workers = self.max_workers or len(names)
            executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix='scrape')
            try:
                futures = {name: executor.submit(self.scrape_metric, name, self.catalog[name]) for name in names}
                concurrent.futures.wait(futures.values(), timeout=self.scrape_timeout)
                for name in names:
                    outcome, observations = self._join(name, futures[name], start)
                    result.outcomes[name] = outcome
                    result.observations.extend(observations)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        for name in names:
            outcome = result.outcomes[name]
            labels = (name,)
            result.observations.append(Observation(SCRAPE_SUCCESS, GAUGE, 1.0 if outcome.success else 0.0, labels))
            result.observations.append(Observation(SCRAPE_DURATION, GAUGE, outcome.duration, labels))
            result.observations.append(Observation(SCRAPE_RESULT_SIZE, GAUGE, float(outcome.result_size), labels))

        result.duration = time.monotonic() - start
        result.observations.append(Observation(TOTAL_SCRAPE_DURATION, GAUGE, result.duration))
        failed = [name for name, outcome in result.outcomes.items() if not outcome.success]
        logger.debug(f"Collection cycle finished in {result.duration:.3f}s, {len(names)} meters, {len(failed)} failed")
        return result

    def _join(self, name: str, future: concurrent.futures.Future,
              start: float) -> Tuple[ScrapeOutcome, List[Observation]]:
        """Turn a finished, failed or overdue scrape into exactly one outcome"""
        if not future.done():
            future.cancel()
            logger.warning(f"Scrape of {name} did not finish within {self.scrape_timeout}s")
            return ScrapeOutcome(name, False, time.monotonic() - start), []

        error = future.exception()
        if isinstance(error, (LabelCardinalityError, UnknownLookupKindError)):
            raise error
        if error is not None:
            logger.error(f"Scrape of {name} failed: {error!r}")
            return ScrapeOutcome(name, False, time.monotonic() - start), []
        return future.result()


def to_metric_families(observations: List[Observation]) -> List[Metric]:
    """Group observations into one metric family per descriptor and value type"""
    families: Dict[Tuple[str, str], Metric] = {}
    for observation in observations:
        descriptor = observation.descriptor
        key = (descriptor.name, observation.value_type)
        family = families.get(key)
        if family is None:
            family_type = _FAMILY_TYPES[observation.value_type]
            family = family_type(descriptor.name, descriptor.documentation, labels=descriptor.labelnames)
            families[key] = family
        family.add_metric(list(observation.label_values), observation.value)
    return list(families.values())


class CeilometerCollector(Collector):
    """Prometheus collector running one scrape cycle per collect() call"""

    def __init__(self, orchestrator: ScrapeOrchestrator):
        self.orchestrator = orchestrator

    def describe(self) -> Iterator[Metric]:
        descriptors = [entry.descriptor for entry in self.orchestrator.catalog.values()]
        descriptors.extend(BOOKKEEPING_DESCRIPTORS)
        logger.debug(f"Sending {len(descriptors)} metrics descriptions")
        for descriptor in descriptors:
            # Sample types are only known per scrape
            yield UnknownMetricFamily(descriptor.name, descriptor.documentation, labels=descriptor.labelnames)

    def collect(self) -> Iterator[Metric]:
        result = self.orchestrator.run_cycle()
        yield from to_metric_families(result.observations)
