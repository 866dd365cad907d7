import pytest

from cpa_operator._cogs.structs.references import AUTOSCALERS, PODS, ROLES, Resource, \
                                                  parse_api_version


def test_url_of_a_namespaced_core_object():
    url = PODS.get_url(namespace='ns1', name='pod1')
    assert url == '/api/v1/namespaces/ns1/pods/pod1'


def test_url_of_a_namespaced_group_list():
    url = ROLES.get_url(namespace='ns1')
    assert url == '/apis/rbac.authorization.k8s.io/v1/namespaces/ns1/roles'


def test_url_of_a_clusterwide_list():
    url = AUTOSCALERS.get_url(namespace=None)
    assert url == '/apis/custompodautoscaler.com/v1/custompodautoscalers'


def test_url_with_a_subresource():
    resource = Resource('apps', 'v1', 'deployments')
    url = resource.get_url(namespace='ns1', name='app', subresource='scale')
    assert url == '/apis/apps/v1/namespaces/ns1/deployments/app/scale'


def test_url_with_params_and_server():
    url = PODS.get_url(server='https://k8s/', namespace='ns1',
                       params={'labelSelector': 'a=b,c=d'})
    assert url == 'https://k8s/api/v1/namespaces/ns1/pods?labelSelector=a%3Db%2Cc%3Dd'


def test_subresource_requires_a_name():
    with pytest.raises(ValueError):
        PODS.get_url(namespace='ns1', subresource='scale')


def test_namespaced_object_requires_a_namespace():
    with pytest.raises(ValueError):
        PODS.get_url(namespace=None, name='pod1')


def test_resources_are_equal_regardless_of_kinds():
    assert Resource('', 'v1', 'pods', kind='Pod') == Resource('', 'v1', 'pods')


def test_api_version_of_core_and_group_resources():
    assert PODS.api_version == 'v1'
    assert AUTOSCALERS.api_version == 'custompodautoscaler.com/v1'


@pytest.mark.parametrize('api_version, expected', [
    ('apps/v1', ('apps', 'v1')),
    ('argoproj.io/v1alpha1', ('argoproj.io', 'v1alpha1')),
    ('v1', ('', 'v1')),
    ('', ('', '')),
])
def test_api_version_parsing(api_version, expected):
    assert parse_api_version(api_version) == expected


def test_api_version_parsing_fails_on_extra_slashes():
    with pytest.raises(ValueError, match=r"Unexpected apiVersion"):
        parse_api_version('a/b/c')
