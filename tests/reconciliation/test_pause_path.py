import pytest

from cpa_operator._cogs.clients.errors import APIServerError
from cpa_operator._core.actions.execution import Result, ValidationError

ANNOTATION = 'v1.custompodautoscaler.com/paused-replicas'


@pytest.fixture()
def pause(declare, autoscaler_body):
    def fn(value, **spec):
        autoscaler_body['metadata']['annotations'] = {ANNOTATION: value}
        return declare(**spec)
    return fn


async def test_autoscaler_is_deleted_before_scaling(cluster, scaler, run, pause):
    pause('3')
    result = await run()
    assert result == Result()
    assert cluster.mutations == [
        ('delete', 'custompodautoscalers', 'ns1', 'cpa1'),
        ('get-scale', 'Deployment', 'ns1', 'app'),
        ('update-scale', 'Deployment', 'ns1', 'app'),
    ]
    assert scaler.replicas['Deployment', 'ns1', 'app'] == 3
    assert cluster.get('custompodautoscalers', 'ns1', 'cpa1') is None


async def test_nothing_is_provisioned_when_paused(cluster, run, pause):
    pause('0')
    await run()
    assert not any(entry[0] == 'create' for entry in cluster.mutations)


@pytest.mark.parametrize('value, replicas', [
    ('0', 0),
    ('+5', 5),
    ('-1', -1),
    ('007', 7),
    ('2147483647', 2147483647),
    ('-2147483648', -2147483648),
])
async def test_valid_replicas(scaler, run, pause, value, replicas):
    pause(value)
    await run()
    assert scaler.replicas['Deployment', 'ns1', 'app'] == replicas


@pytest.mark.parametrize('value', [
    'abc', '', ' 3', '3 ', '3.0', '0x10', '1e3', '3\n', '2147483648', '-2147483649',
])
async def test_malformed_replicas_fail_without_mutations(cluster, run, pause, value):
    pause(value)
    with pytest.raises(ValidationError):
        await run()
    assert cluster.mutations == []
    assert cluster.get('custompodautoscalers', 'ns1', 'cpa1') is not None


async def test_core_group_targets_are_supported(scaler, run, pause):
    pause('2', scaleTargetRef={'kind': 'ReplicationController', 'name': 'rc', 'apiVersion': 'v1'})
    await run()
    assert scaler.replicas['ReplicationController', 'ns1', 'rc'] == 2


async def test_invalid_api_version_fails_after_deletion(cluster, run, pause):
    pause('2', scaleTargetRef={'kind': 'Deployment', 'name': 'app', 'apiVersion': 'a/b/c'})
    with pytest.raises(ValidationError):
        await run()
    assert cluster.mutations == [('delete', 'custompodautoscalers', 'ns1', 'cpa1')]


async def test_deletion_failure_leaves_the_target_untouched(cluster, run, pause):
    pause('2')
    cluster.failures['delete', 'custompodautoscalers'] = APIServerError(None, status=500)
    with pytest.raises(APIServerError):
        await run()
    assert cluster.mutations == [('delete', 'custompodautoscalers', 'ns1', 'cpa1')]


async def test_scale_read_failure_aborts_the_update(cluster, run, pause):
    pause('2')
    cluster.failures['get-scale', 'Deployment'] = APIServerError(None, status=500)
    with pytest.raises(APIServerError):
        await run()
    assert ('update-scale', 'Deployment', 'ns1', 'app') not in cluster.mutations
