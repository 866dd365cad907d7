"""
The declared autoscaler resource, as parsed from the raw body.

The raw bodies are dicts as JSON-decoded from the API. The reconciliation
works with the typed read-only view of them instead, so that the defaulting
of the tri-state flags and the access to the nested fields are explicit.

A missing tri-state flag is stored as ``None`` (i.e. "unset"), which is
distinguishable from an explicit ``False``. The documented defaults are
applied once with :meth:`AutoscalerSpec.with_defaults`.
"""
import copy
import dataclasses
import datetime
from collections.abc import Mapping
from typing import Any

import iso8601

from cpa_operator._cogs.structs import bodies, references

# The values used for the tri-state flags when they are not set.
DEFAULTS: Mapping[str, bool] = {
    'provision_service_account': True,
    'provision_role': True,
    'provision_role_binding': True,
    'provision_pod': True,
    'role_requires_metrics_server': False,
    'role_requires_argo_rollouts': False,
}


@dataclasses.dataclass(frozen=True)
class CrossVersionObjectReference:
    """ A reference to the scale target: the workload being autoscaled. """
    kind: str
    name: str
    api_version: str = ''

    def as_dict(self) -> dict[str, str]:
        # The key order is stable and matters: it is visible in the serialized form.
        result = {'kind': self.kind, 'name': self.name}
        if self.api_version:
            result['apiVersion'] = self.api_version
        return result


@dataclasses.dataclass(frozen=True)
class ConfigItem:
    name: str
    value: str


@dataclasses.dataclass(frozen=True)
class AutoscalerSpec:
    scale_target_ref: CrossVersionObjectReference
    image: str = ''
    pull_policy: str = ''
    config: tuple[ConfigItem, ...] = ()
    template: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    provision_service_account: bool | None = None
    provision_role: bool | None = None
    provision_role_binding: bool | None = None
    provision_pod: bool | None = None
    role_requires_metrics_server: bool | None = None
    role_requires_argo_rollouts: bool | None = None

    @property
    def template_meta(self) -> Mapping[str, Any]:
        return self.template.get('metadata') or {}

    @property
    def template_spec(self) -> Mapping[str, Any]:
        return self.template.get('spec') or {}

    def with_defaults(self) -> "AutoscalerSpec":
        """ A copy of the spec with all unset tri-state flags set to their defaults. """
        unset = {key: val for key, val in DEFAULTS.items() if getattr(self, key) is None}
        return dataclasses.replace(self, **unset)


@dataclasses.dataclass(frozen=True)
class CustomPodAutoscaler:
    name: str
    namespace: references.NamespaceName
    spec: AutoscalerSpec
    raw: bodies.RawBody
    uid: str | None = None
    annotations: Mapping[str, str] = dataclasses.field(default_factory=dict)
    deletion_timestamp: datetime.datetime | None = None

    @property
    def identity(self) -> references.NamespacedName:
        return references.NamespacedName(self.namespace, self.name)

    @classmethod
    def from_body(cls, body: bodies.RawBody) -> "CustomPodAutoscaler":
        meta = body.get('metadata', {})
        spec = body.get('spec') or {}
        ref = spec.get('scaleTargetRef') or {}
        deletion_timestamp = meta.get('deletionTimestamp')
        return cls(
            name=meta.get('name', ''),
            namespace=references.NamespaceName(meta.get('namespace', '')),
            uid=meta.get('uid'),
            annotations=dict(meta.get('annotations') or {}),
            deletion_timestamp=iso8601.parse_date(deletion_timestamp) if deletion_timestamp else None,
            raw=body,
            spec=AutoscalerSpec(
                scale_target_ref=CrossVersionObjectReference(
                    kind=ref.get('kind', ''),
                    name=ref.get('name', ''),
                    api_version=ref.get('apiVersion', ''),
                ),
                image=spec.get('image', ''),
                pull_policy=spec.get('pullPolicy', ''),
                config=tuple(
                    ConfigItem(name=item.get('name', ''), value=item.get('value', ''))
                    for item in spec.get('config') or []
                ),
                template=copy.deepcopy(spec.get('template') or {}),
                provision_service_account=spec.get('provisionServiceAccount'),
                provision_role=spec.get('provisionRole'),
                provision_role_binding=spec.get('provisionRoleBinding'),
                provision_pod=spec.get('provisionPod'),
                role_requires_metrics_server=spec.get('roleRequiresMetricsServer'),
                role_requires_argo_rollouts=spec.get('roleRequiresArgoRollouts'),
            ),
        )
