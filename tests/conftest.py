import contextvars
import copy
import dataclasses
import logging
from typing import Any

import aiohttp.web
import aiohttp.test_utils
import pytest

from cpa_operator._cogs.clients import auth, creating, deleting, errors, fetching, replacing
from cpa_operator._cogs.configs.configuration import OperatorSettings
from cpa_operator._cogs.structs.credentials import ConnectionInfo


def pytest_configure(config):
    config.addinivalue_line('markers', "e2e: end-to-end tests with real clusters.")


@pytest.fixture()
def settings():
    settings = OperatorSettings()
    settings.networking.error_backoffs = [0, 0]
    settings.reconciling.error_backoffs = (0.1, 0.2, 0.3)
    settings.queueing.idle_timeout = 0.1
    settings.queueing.exit_timeout = 0.5
    settings.watching.reconnect_backoff = 0
    return settings


@pytest.fixture()
def logger():
    return logging.getLogger('cpa_operator.tests')


@pytest.fixture()
def autoscaler_body():
    return {
        'apiVersion': 'custompodautoscaler.com/v1',
        'kind': 'CustomPodAutoscaler',
        'metadata': {'name': 'cpa1', 'namespace': 'ns1', 'uid': 'uid1'},
        'spec': {
            'scaleTargetRef': {'apiVersion': 'apps/v1', 'kind': 'Deployment', 'name': 'app'},
            'template': {
                'spec': {
                    'containers': [{'name': 'main', 'image': 'cpa:latest'}],
                },
            },
        },
    }


#
# A fake K8s API server for the low-level client functions: real HTTP, fake responses.
#


@dataclasses.dataclass
class ReceivedRequest:
    method: str
    path: str
    query: dict[str, str]
    body: Any


class FakeAPIServer:
    """
    Serve the pre-configured responses by method & path, and remember the requests.

    Several responses for the same method & path are served one after another;
    the last one is repeated forever. Unknown paths get HTTP 404.
    """

    def __init__(self) -> None:
        super().__init__()
        self.responses: dict[tuple[str, str, bool], list[tuple[int, Any, str | None]]] = {}
        self.requests: list[ReceivedRequest] = []

    def add(
            self, method: str, path: str, *,
            status: int = 200, json: Any = None, text: str | None = None, watch: bool = False,
    ) -> None:
        self.responses.setdefault((method.upper(), path, watch), []).append((status, json, text))

    def make_app(self) -> aiohttp.web.Application:
        app = aiohttp.web.Application()
        app.router.add_route('*', '/{tail:.*}', self.handle)
        return app

    async def handle(self, request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        body = await request.json() if request.can_read_body else None
        self.requests.append(ReceivedRequest(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            body=body,
        ))
        watch = request.query.get('watch') == 'true'
        queue = self.responses.get((request.method, request.path, watch))
        if not queue:
            return aiohttp.web.json_response(
                {'kind': 'Status', 'code': 404, 'message': 'not found'}, status=404)
        status, payload, text = queue.pop(0) if len(queue) > 1 else queue[0]
        if text is not None:
            return aiohttp.web.Response(text=text, status=status, content_type='application/json')
        return aiohttp.web.json_response(payload, status=status)


@pytest.fixture()
async def fake_api(mocker):
    api = FakeAPIServer()
    server = aiohttp.test_utils.TestServer(api.make_app())
    await server.start_server()
    context = auth.APIContext(ConnectionInfo(server=str(server.make_url('/')).rstrip('/')))

    # A default is visible in every task, unlike a value set in the fixture's own task.
    mocker.patch.object(auth, 'context_var', contextvars.ContextVar('context_var', default=context))
    try:
        yield api
    finally:
        await context.close()
        await server.close()


#
# A fake cluster for the reconciliation: the objects in memory, the mutations in a log.
#


class FakeCluster:
    """
    The objects of the cluster, as seen by the reconciliation via the API client.

    Every call is logged as ``(verb, plural, namespace, name)``, so that
    the order and the absence of the mutations can be asserted.
    Failures are injected by ``(verb, plural)`` into ``failures``.
    """

    def __init__(self) -> None:
        super().__init__()
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.log: list[tuple[str, str, str, str]] = []
        self.failures: dict[tuple[str, str], BaseException] = {}
        self._version = 0

    @property
    def mutations(self) -> list[tuple[str, str, str, str]]:
        return [entry for entry in self.log if entry[0] not in ('read', 'list')]

    def put(self, plural: str, body: dict[str, Any]) -> dict[str, Any]:
        body = copy.deepcopy(body)
        meta = body.setdefault('metadata', {})
        self._version += 1
        meta['resourceVersion'] = str(self._version)
        meta.setdefault('uid', f"uid-{plural}-{meta['name']}")
        self.objects[plural, meta.get('namespace', ''), meta['name']] = body
        return copy.deepcopy(body)

    def get(self, plural: str, namespace: str, name: str) -> dict[str, Any] | None:
        return self.objects.get((plural, namespace, name))

    def _call(self, verb: str, plural: str, namespace: str, name: str) -> None:
        self.log.append((verb, plural, namespace, name))
        if (verb, plural) in self.failures:
            raise self.failures[verb, plural]

    async def read_obj(self, *, settings, resource, namespace, name, logger):
        self._call('read', resource.plural, namespace, name)
        obj = self.objects.get((resource.plural, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    async def list_objs(self, *, settings, resource, namespace, label_selector=None, logger):
        self._call('list', resource.plural, namespace or '', '')
        required = dict(pair.split('=', 1) for pair in label_selector.split(',')) if label_selector else {}
        items = [
            copy.deepcopy(obj) for (plural, ns, _), obj in self.objects.items()
            if plural == resource.plural and (namespace is None or ns == namespace)
            and all(obj['metadata'].get('labels', {}).get(k) == v for k, v in required.items())
        ]
        return items, str(self._version)

    async def create_obj(self, *, settings, resource, body, logger):
        meta = body['metadata']
        self._call('create', resource.plural, meta['namespace'], meta['name'])
        if (resource.plural, meta['namespace'], meta['name']) in self.objects:
            raise errors.APIConflictError(None, status=409)
        return self.put(resource.plural, body)

    async def replace_obj(self, *, settings, resource, namespace, name, body, logger):
        self._call('replace', resource.plural, namespace, name)
        existing = self.objects.get((resource.plural, namespace, name))
        if existing is None:
            raise errors.APINotFoundError(None, status=404)
        if body['metadata'].get('resourceVersion') != existing['metadata']['resourceVersion']:
            raise errors.APIConflictError(None, status=409)
        return self.put(resource.plural, body)

    async def delete_obj(self, *, settings, resource, namespace, name, logger):
        self._call('delete', resource.plural, namespace, name)
        return self.objects.pop((resource.plural, namespace, name), None)


class FakeScaler:
    """ The scale subresources of the scale targets, logged into the same cluster log. """

    def __init__(self, cluster: FakeCluster) -> None:
        super().__init__()
        self.cluster = cluster
        self.replicas: dict[tuple[str, str, str], int] = {}

    async def get(self, *, group, kind, name, namespace, logger):
        self.cluster._call('get-scale', kind, namespace, name)
        replicas = self.replicas.get((kind, namespace, name), 1)
        return {'apiVersion': 'autoscaling/v1', 'kind': 'Scale',
                'metadata': {'name': name, 'namespace': namespace},
                'spec': {'replicas': replicas}}

    async def update(self, *, group, kind, name, namespace, scale, logger):
        self.cluster._call('update-scale', kind, namespace, name)
        self.replicas[kind, namespace, name] = scale['spec']['replicas']
        return scale


@pytest.fixture()
def cluster(mocker):
    cluster = FakeCluster()
    mocker.patch.object(fetching, 'read_obj', new=cluster.read_obj)
    mocker.patch.object(fetching, 'list_objs', new=cluster.list_objs)
    mocker.patch.object(creating, 'create_obj', new=cluster.create_obj)
    mocker.patch.object(replacing, 'replace_obj', new=cluster.replace_obj)
    mocker.patch.object(deleting, 'delete_obj', new=cluster.delete_obj)
    return cluster


@pytest.fixture()
def scaler(cluster):
    return FakeScaler(cluster)
