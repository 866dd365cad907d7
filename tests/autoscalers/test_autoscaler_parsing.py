import datetime

import pytest

from cpa_operator._cogs.structs.autoscalers import DEFAULTS, AutoscalerSpec, ConfigItem, \
                                                   CrossVersionObjectReference, CustomPodAutoscaler
from cpa_operator._cogs.structs.references import NamespacedName


def test_identity_is_namespace_and_name(autoscaler_body):
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.identity == NamespacedName('ns1', 'cpa1')
    assert str(autoscaler.identity) == 'ns1/cpa1'


def test_scale_target_ref_is_parsed(autoscaler_body):
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    ref = autoscaler.spec.scale_target_ref
    assert ref == CrossVersionObjectReference(kind='Deployment', name='app', api_version='apps/v1')


def test_config_keeps_the_declared_order_and_duplicates(autoscaler_body):
    autoscaler_body['spec']['config'] = [
        {'name': 'interval', 'value': '15000'},
        {'name': 'startTime', 'value': '1'},
        {'name': 'interval', 'value': '30000'},
    ]
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.spec.config == (
        ConfigItem('interval', '15000'),
        ConfigItem('startTime', '1'),
        ConfigItem('interval', '30000'),
    )


def test_unset_toggles_are_none_not_false(autoscaler_body):
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.spec.provision_service_account is None
    assert autoscaler.spec.provision_pod is None
    assert autoscaler.spec.role_requires_metrics_server is None


def test_explicit_false_toggles_are_kept(autoscaler_body):
    autoscaler_body['spec']['provisionRole'] = False
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.spec.provision_role is False
    assert autoscaler.spec.with_defaults().provision_role is False


def test_defaults_are_applied_to_unset_toggles_only(autoscaler_body):
    autoscaler_body['spec']['roleRequiresArgoRollouts'] = True
    autoscaler_body['spec']['provisionPod'] = False
    spec = CustomPodAutoscaler.from_body(autoscaler_body).spec.with_defaults()
    assert spec.provision_service_account is True
    assert spec.provision_role is True
    assert spec.provision_role_binding is True
    assert spec.provision_pod is False
    assert spec.role_requires_metrics_server is False
    assert spec.role_requires_argo_rollouts is True


def test_defaults_do_not_modify_the_original_spec(autoscaler_body):
    spec = CustomPodAutoscaler.from_body(autoscaler_body).spec
    spec.with_defaults()
    assert all(getattr(spec, key) is None for key in DEFAULTS)


def test_deletion_timestamp_is_parsed(autoscaler_body):
    autoscaler_body['metadata']['deletionTimestamp'] = '2020-12-31T23:59:59Z'
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.deletion_timestamp == datetime.datetime(2020, 12, 31, 23, 59, 59,
                                                              tzinfo=datetime.timezone.utc)


def test_deletion_timestamp_is_none_when_absent(autoscaler_body):
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    assert autoscaler.deletion_timestamp is None


def test_template_is_copied_from_the_body(autoscaler_body):
    autoscaler = CustomPodAutoscaler.from_body(autoscaler_body)
    autoscaler_body['spec']['template']['spec']['containers'].append({'name': 'extra'})
    assert len(autoscaler.spec.template_spec['containers']) == 1


@pytest.mark.parametrize('template', [{}, {'metadata': None, 'spec': None}])
def test_template_parts_default_to_empty(template):
    spec = AutoscalerSpec(scale_target_ref=CrossVersionObjectReference('Deployment', 'app'),
                          template=template)
    assert spec.template_meta == {}
    assert spec.template_spec == {}


def test_reference_dict_keeps_the_key_order():
    ref = CrossVersionObjectReference(kind='Deployment', name='app', api_version='apps/v1')
    assert list(ref.as_dict()) == ['kind', 'name', 'apiVersion']


def test_reference_dict_omits_empty_api_version():
    ref = CrossVersionObjectReference(kind='Deployment', name='app')
    assert ref.as_dict() == {'kind': 'Deployment', 'name': 'app'}
