import asyncio
import json

import pytest

from cpa_operator._cogs.clients.watching import Bookmark, WatchingError, infinite_watch
from cpa_operator._cogs.structs.references import PODS

URL = '/api/v1/namespaces/ns1/pods'


def stream(*events):
    return ''.join(json.dumps(event) + '\n' for event in events)


async def collect(gen, count):
    items = []
    async for item in gen:
        items.append(item)
        if len(items) >= count:
            break
    await gen.aclose()
    return items


@pytest.fixture()
def listed(fake_api):
    fake_api.add('GET', URL, json={
        'kind': 'PodList', 'apiVersion': 'v1',
        'metadata': {'resourceVersion': '100'},
        'items': [{'metadata': {'name': 'pod1', 'resourceVersion': '90'}}],
    })
    return fake_api


async def test_listing_then_watching(listed, settings):
    listed.add('GET', URL, watch=True, text=stream(
        {'type': 'ADDED', 'object': {'metadata': {'name': 'pod2', 'resourceVersion': '101'}}},
        {'type': 'DELETED', 'object': {'metadata': {'name': 'pod1', 'resourceVersion': '102'}}},
    ))
    stopper = asyncio.get_running_loop().create_future()
    events = await collect(infinite_watch(settings=settings, resource=PODS, namespace='ns1',
                                          stopper=stopper), 4)
    assert events[0] == {'type': None, 'object': {'metadata': {'name': 'pod1', 'resourceVersion': '90'},
                                                  'kind': 'Pod', 'apiVersion': 'v1'}}
    assert events[1] is Bookmark.LISTED
    assert events[2]['type'] == 'ADDED'
    assert events[3]['type'] == 'DELETED'
    assert listed.requests[1].query['watch'] == 'true'
    assert listed.requests[1].query['resourceVersion'] == '100'


async def test_label_selector_is_passed_to_both_requests(listed, settings):
    listed.add('GET', URL, watch=True, text=stream(
        {'type': 'DELETED', 'object': {'metadata': {'name': 'pod1'}}},
    ))
    await collect(infinite_watch(settings=settings, resource=PODS, namespace='ns1',
                                 label_selector='a=b'), 3)
    assert listed.requests[0].query['labelSelector'] == 'a=b'
    assert listed.requests[1].query['labelSelector'] == 'a=b'


async def test_unsupported_event_types_are_ignored(listed, settings):
    listed.add('GET', URL, watch=True, text=stream(
        {'type': 'BOOKMARK', 'object': {'metadata': {'resourceVersion': '200'}}},
        {'type': 'MODIFIED', 'object': {'metadata': {'name': 'pod1'}}},
    ))
    events = await collect(infinite_watch(settings=settings, resource=PODS, namespace='ns1'), 3)
    assert events[2]['type'] == 'MODIFIED'


async def test_error_events_fail_the_stream(listed, settings):
    listed.add('GET', URL, watch=True, text=stream(
        {'type': 'ERROR', 'object': {'code': 500, 'message': 'boom'}},
    ))
    with pytest.raises(WatchingError):
        await collect(infinite_watch(settings=settings, resource=PODS, namespace='ns1'), 10)


async def test_gone_errors_restart_from_the_listing(listed, settings):
    listed.add('GET', URL, watch=True, text=stream(
        {'type': 'ERROR', 'object': {'code': 410, 'message': 'too old'}},
    ))
    events = await collect(infinite_watch(settings=settings, resource=PODS, namespace='ns1'), 4)
    assert events[2]['type'] is None  # listed again
    assert events[3] is Bookmark.LISTED
