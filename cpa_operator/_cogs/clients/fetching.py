from collections.abc import Collection

from cpa_operator._cogs.clients import api, errors
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies, references


async def read_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Read one object of a specific resource kind by its name.

    Returns ``None`` if the object is absent, as detected by the HTTP 404.
    All other API errors are escalated to the caller.
    """
    try:
        obj: bodies.RawBody = await api.get(
            url=resource.get_url(namespace=namespace, name=name),
            logger=logger,
            settings=settings,
        )
    except errors.APINotFoundError:
        return None
    return obj


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        label_selector: str | None = None,
        logger: typedefs.Logger,
) -> tuple[Collection[bodies.RawBody], str]:
    """
    List the objects of specific resource type.

    The cluster-scoped call is used if the namespace is ``None``:
    e.g. when the operator serves all namespaces. Otherwise,
    the namespace-scoped call is used.

    The items get their ``kind`` & ``apiVersion`` from the list's ones,
    since K8s API does not populate them in the listed items.
    """
    params = {'labelSelector': label_selector} if label_selector else None
    rsp = await api.get(
        url=resource.get_url(namespace=namespace, params=params),
        logger=logger,
        settings=settings,
    )

    items: list[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
