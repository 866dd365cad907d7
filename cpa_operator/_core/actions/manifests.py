"""
The desired bodies of the generated objects: pure functions, no API calls.

Every generated object carries the standard labels: the constant manager's
identity and the name of the owning autoscaler. The watchers of the generated
objects and the cleanup of the orphaned pods both depend on these labels.
"""
import copy
from collections.abc import Mapping, Sequence
from typing import Any

from cpa_operator._cogs.structs import autoscalers, bodies, references

MANAGER_NAME = 'custom-pod-autoscaler-operator'
MANAGED_BY_LABEL = 'app.kubernetes.io/managed-by'
OWNED_BY_LABEL = 'v1.custompodautoscaler.com/owned-by'

# The permissions needed by any autoscaler to read & scale the common workloads.
BASELINE_RULES: Sequence[Mapping[str, Sequence[str]]] = (
    {
        'apiGroups': [''],
        'resources': ['pods', 'replicationcontrollers', 'replicationcontrollers/scale'],
        'verbs': ['*'],
    },
    {
        'apiGroups': ['apps'],
        'resources': ['deployments', 'deployments/scale',
                      'replicasets', 'replicasets/scale',
                      'statefulsets', 'statefulsets/scale'],
        'verbs': ['*'],
    },
)

METRICS_SERVER_RULE: Mapping[str, Sequence[str]] = {
    'apiGroups': ['metrics.k8s.io', 'custom.metrics.k8s.io', 'external.metrics.k8s.io'],
    'resources': ['*'],
    'verbs': ['*'],
}

ARGO_ROLLOUTS_RULE: Mapping[str, Sequence[str]] = {
    'apiGroups': ['argoproj.io'],
    'resources': ['rollouts', 'rollouts/scale'],
    'verbs': ['*'],
}


def build_labels(name: str) -> dict[str, str]:
    return {
        MANAGED_BY_LABEL: MANAGER_NAME,
        OWNED_BY_LABEL: name,
    }


def build_env(
        *,
        namespace: str,
        scale_target_ref: str,
        config: Sequence[autoscalers.ConfigItem],
) -> list[dict[str, str]]:
    """
    The environment variables injected into every container of the autoscaler.

    The config items are passed verbatim and in the declared order.
    The duplicates are not removed: the later ones just go after the earlier ones.
    """
    env = [
        {'name': 'scaleTargetRef', 'value': scale_target_ref},
        {'name': 'namespace', 'value': namespace},
    ]
    env.extend({'name': item.name, 'value': item.value} for item in config)
    return env


def build_service_account(
        *,
        name: str,
        namespace: references.NamespaceName,
        labels: Mapping[str, str],
) -> bodies.RawBody:
    return {
        'apiVersion': 'v1',
        'kind': 'ServiceAccount',
        'metadata': {'name': name, 'namespace': namespace, 'labels': dict(labels)},
    }


def build_role(
        *,
        name: str,
        namespace: references.NamespaceName,
        labels: Mapping[str, str],
        metrics_server: bool,
        argo_rollouts: bool,
) -> bodies.RawBody:
    rules = [copy.deepcopy(dict(rule)) for rule in BASELINE_RULES]
    if metrics_server:
        rules.append(copy.deepcopy(dict(METRICS_SERVER_RULE)))
    if argo_rollouts:
        rules.append(copy.deepcopy(dict(ARGO_ROLLOUTS_RULE)))
    return {
        'apiVersion': 'rbac.authorization.k8s.io/v1',
        'kind': 'Role',
        'metadata': {'name': name, 'namespace': namespace, 'labels': dict(labels)},
        'rules': rules,
    }


def build_role_binding(
        *,
        name: str,
        namespace: references.NamespaceName,
        labels: Mapping[str, str],
        service_account_name: str,
        role_name: str,
) -> bodies.RawBody:
    return {
        'apiVersion': 'rbac.authorization.k8s.io/v1',
        'kind': 'RoleBinding',
        'metadata': {'name': name, 'namespace': namespace, 'labels': dict(labels)},
        'subjects': [{
            'kind': 'ServiceAccount',
            'name': service_account_name,
            'namespace': namespace,
        }],
        'roleRef': {
            'kind': 'Role',
            'name': role_name,
            'apiGroup': 'rbac.authorization.k8s.io',
        },
    }


def build_pod(
        *,
        name: str,
        namespace: references.NamespaceName,
        labels: Mapping[str, str],
        template: Mapping[str, Any],
        env: Sequence[Mapping[str, str]],
        service_account_name: str,
) -> bodies.RawBody:
    """
    The autoscaler's pod as derived from the pod template.

    The standard labels are merged into the template's labels (and win);
    the template's name & namespace default to the autoscaler's ones;
    the env vars are appended to every container's existing env vars.
    """
    template = copy.deepcopy(dict(template))
    meta = dict(template.get('metadata') or {})
    spec = dict(template.get('spec') or {})

    meta['labels'] = dict(meta.get('labels') or {}, **labels)
    meta['name'] = meta.get('name') or name
    meta['namespace'] = meta.get('namespace') or namespace

    containers = []
    for container in spec.get('containers') or []:
        container = dict(container)
        container['env'] = list(container.get('env') or []) + [dict(var) for var in env]
        containers.append(container)
    spec['containers'] = containers
    spec['serviceAccountName'] = service_account_name

    return {
        'apiVersion': 'v1',
        'kind': 'Pod',
        'metadata': meta,
        'spec': spec,
    }
