"""
References to the namespaces, the objects, and the resource kinds.

The resource kinds used by the operator are fixed and known in advance
(see the constants at the bottom), except for the scale targets, which
are resolved at runtime via the API discovery.
"""
import dataclasses
import urllib.parse
from collections.abc import Mapping
from typing import NamedTuple, NewType, Optional

# A real namespace of an object, as opposed to the "all namespaces" marker.
NamespaceName = NewType('NamespaceName', str)

# A namespace for the API calls: ``None`` means the cluster-wide calls.
Namespace = Optional[NamespaceName]


class NamespacedName(NamedTuple):
    """
    An identity of a namespaced object, e.g. of a declared autoscaler.

    Used as a key for the per-object work queues and in the log messages.
    """
    namespace: NamespaceName
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}'


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    A resource kind as addressed in the API URLs: a group, a version, a plural.

    The group is ``""`` for the core resources (e.g. pods). The kind and the
    scope are informational and do not take part in the comparison.
    """
    group: str
    version: str
    plural: str
    kind: str | None = dataclasses.field(default=None, compare=False)
    namespaced: bool = dataclasses.field(default=True, compare=False)

    def __repr__(self) -> str:
        return '.'.join(part for part in (self.plural, self.version, self.group) if part)

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: str | None = None,
            namespace: Namespace = None,
            name: str | None = None,
            subresource: str | None = None,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        Build a URL of a list (without a name) or of an object (with a name).

        ``namespace=None`` gives the cluster-wide lists; it is ignored for
        the cluster-scoped resources. The params go to the query string.
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if not self.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        path = '/api' if not self.group else f'/apis/{self.group}'
        path += f'/{self.version}'
        if self.namespaced and namespace is not None:
            path += f'/namespaces/{namespace}'
        path += f'/{self.plural}'
        for part in (name, subresource):
            if part:
                path += f'/{part}'
        if params:
            path += '?' + urllib.parse.urlencode(params, encoding='utf-8')
        return path if server is None else f"{server.rstrip('/')}{path}"


def parse_api_version(api_version: str) -> tuple[str, str]:
    """
    Split an ``apiVersion`` into a group and a version.

    ``"apps/v1"`` is ``("apps", "v1")``, ``"v1"`` is ``("", "v1")``,
    an empty string is ``("", "")``. More than one slash is an error.
    """
    if not api_version:
        return '', ''
    elif api_version.count('/') == 0:
        return '', api_version
    elif api_version.count('/') == 1:
        group, version = api_version.split('/')
        return group, version
    else:
        raise ValueError(f"Unexpected apiVersion string: {api_version!r}")


# The declared (primary) resource of the operator.
AUTOSCALERS = Resource('custompodautoscaler.com', 'v1', 'custompodautoscalers',
                       kind='CustomPodAutoscaler')

# The generated (secondary) resources owned by the declared resources.
SERVICEACCOUNTS = Resource('', 'v1', 'serviceaccounts', kind='ServiceAccount')
ROLES = Resource('rbac.authorization.k8s.io', 'v1', 'roles', kind='Role')
ROLEBINDINGS = Resource('rbac.authorization.k8s.io', 'v1', 'rolebindings', kind='RoleBinding')
PODS = Resource('', 'v1', 'pods', kind='Pod')
