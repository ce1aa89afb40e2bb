"""Minimal OpenStack REST clients for Keystone, Ceilometer, Nova and Neutron"""

import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

import requests

from .samples import Sample

logger = logging.getLogger(__name__)


class OpenStackError(Exception):
    """A call to an OpenStack API failed"""


class AuthenticationError(OpenStackError):
    """Keystone authentication could not be completed"""


def _auth_url_v3(auth_url: str) -> str:
    auth_url = auth_url.rstrip('/')
    if not auth_url.endswith('/v3'):
        auth_url += '/v3'
    return auth_url


def _auth_body(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Keystone v3 password auth request built from OS_* variables"""
    missing = [var for var in ('OS_AUTH_URL', 'OS_USERNAME', 'OS_PASSWORD') if not environ.get(var)]
    project = environ.get('OS_PROJECT_NAME') or environ.get('OS_TENANT_NAME')
    if not project:
        missing.append('OS_PROJECT_NAME')
    if missing:
        raise AuthenticationError(f"Missing environment variables: {', '.join(missing)}")

    return {
        'auth': {
            'identity': {
                'methods': ['password'],
                'password': {
                    'user': {
                        'name': environ['OS_USERNAME'],
                        'domain': {'name': environ.get('OS_USER_DOMAIN_NAME') or 'Default'},
                        'password': environ['OS_PASSWORD'],
                    },
                },
            },
            'scope': {
                'project': {
                    'name': project,
                    'domain': {'name': environ.get('OS_PROJECT_DOMAIN_NAME') or 'Default'},
                },
            },
        },
    }


class OpenStackSession:
    """Authenticated HTTP session with a resolved service catalog"""

    def __init__(self, http: requests.Session, token: str, catalog: List[Dict[str, Any]],
                 interface: str = 'public', region: Optional[str] = None, timeout: float = 10.0,
                 reauthenticate: Optional[Callable[[], str]] = None):
        self.http = http
        self.token = token
        self.catalog = catalog
        self.interface = interface
        self.region = region
        self.timeout = timeout
        self.reauthenticate = reauthenticate
        self._token_lock = threading.Lock()
        self.http.headers.update({'X-Auth-Token': token, 'Accept': 'application/json'})

    def renew_token(self, stale_token: str) -> None:
        """Replace stale_token with a fresh one unless another thread already did"""
        with self._token_lock:
            if self.token != stale_token:
                return
            logger.info("Auth token rejected, re-authenticating")
            self.token = self.reauthenticate()
            self.http.headers['X-Auth-Token'] = self.token

    def endpoint(self, service_type: str) -> str:
        """URL of service_type for the configured interface and region"""
        for service in self.catalog:
            if service.get('type') != service_type:
                continue
            for endpoint in service.get('endpoints', []):
                if endpoint.get('interface') != self.interface:
                    continue
                if self.region and self.region not in (endpoint.get('region'), endpoint.get('region_id')):
                    continue
                return endpoint['url'].rstrip('/')
        raise OpenStackError(f"No {self.interface} endpoint for service {service_type!r} in region {self.region!r}")

    def get(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET url and decode the JSON body.

        A 401 renews the token once and repeats the request.
        """
        try:
            token = self.token
            response = self.http.get(url, params=params, timeout=self.timeout)
            if response.status_code == 401 and self.reauthenticate is not None:
                self.renew_token(token)
                response = self.http.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise OpenStackError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise OpenStackError(f"GET {url} returned invalid JSON: {e}") from e


def authenticate(environ: Mapping[str, str], timeout: float = 10.0,
                 http: Optional[requests.Session] = None) -> OpenStackSession:
    """Authenticate against Keystone v3 with credentials from the environment"""
    http = http or requests.Session()
    token, catalog = _request_token(http, environ, timeout)

    def reauthenticate() -> str:
        return _request_token(http, environ, timeout)[0]

    return OpenStackSession(
        http, token, catalog,
        interface=environ.get('OS_INTERFACE') or 'public',
        region=environ.get('OS_REGION_NAME') or None,
        timeout=timeout,
        reauthenticate=reauthenticate,
    )


def _request_token(http: requests.Session, environ: Mapping[str, str],
                   timeout: float) -> Tuple[str, List[Dict[str, Any]]]:
    """POST password credentials to Keystone, returning the token and service catalog"""
    body = _auth_body(environ)
    url = f"{_auth_url_v3(environ['OS_AUTH_URL'])}/auth/tokens"
    try:
        response = http.post(url, json=body, timeout=timeout)
        response.raise_for_status()
        token = response.headers['X-Subject-Token']
        catalog = response.json()['token'].get('catalog', [])
    except requests.RequestException as e:
        raise AuthenticationError(f"Authentication against {url} failed: {e}") from e
    except (KeyError, ValueError) as e:
        raise AuthenticationError(f"Unexpected authentication response from {url}: {e}") from e

    logger.info(f"Authenticated as {environ['OS_USERNAME']} against {url}")
    return token, catalog


class MeteringClient:
    """Ceilometer v2 sample queries"""

    def __init__(self, session: OpenStackSession):
        self.session = session
        self.base_url = session.endpoint('metering')

    def query(self, meter: str, field: str, op: str, value: str, limit: int) -> List[Sample]:
        """List samples of meter where field <op> value, at most limit of them"""
        params = {'q.field': field, 'q.op': op, 'q.value': value, 'limit': limit}
        data = self.session.get(f"{self.base_url}/v2/meters/{meter}", params=params)
        try:
            return [Sample.from_api(item) for item in data]
        except (AttributeError, TypeError, ValueError) as e:
            raise OpenStackError(f"Malformed samples for meter {meter!r}: {e}") from e


class ResourceClient:
    """Nova server and Neutron LBaaS pool name lookups"""

    def __init__(self, session: OpenStackSession):
        self.session = session
        self.compute_url = session.endpoint('compute')
        network_url = session.endpoint('network')
        if not network_url.endswith('/v2.0'):
            network_url += '/v2.0'
        self.network_url = network_url

    def _paginate(self, url: str, key: str) -> Iterator[Dict[str, Any]]:
        """Yield every item under key, following rel=next links"""
        next_url = url
        while next_url:
            page = self.session.get(next_url)
            yield from page.get(key, [])
            next_url = None
            for link in page.get(f"{key}_links", []):
                if link.get('rel') == 'next':
                    next_url = link.get('href')
                    break

    def list_pools(self) -> Iterator[Tuple[str, str]]:
        for pool in self._paginate(f"{self.network_url}/lb/pools", 'pools'):
            yield pool['id'], pool.get('name') or ''

    def list_instances(self) -> Iterator[Tuple[str, str]]:
        for server in self._paginate(f"{self.compute_url}/servers", 'servers'):
            yield server['id'], server.get('name') or ''

    def get_pool(self, pool_id: str) -> str:
        return self.session.get(f"{self.network_url}/lb/pools/{pool_id}")['pool'].get('name') or ''

    def get_instance(self, instance_id: str) -> str:
        return self.session.get(f"{self.compute_url}/servers/{instance_id}")['server'].get('name') or ''
