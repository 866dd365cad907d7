"""
Discovery of the resources served by the API: their plurals, kinds, scopes.

Only the scale subresource needs it: the scale targets are referenced
by their kinds (e.g. ``Deployment``), while the API URLs need the plurals
(e.g. ``deployments``). The results are cached per API context, i.e.
for the lifetime of the operator's session.
"""
from collections.abc import Mapping
from typing import Any

from cpa_operator._cogs.clients import api, auth, errors
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import references


async def get_preferred_version(
        *,
        settings: configuration.OperatorSettings,
        group: str,
        logger: typedefs.Logger,
) -> str:
    if group == '':
        return 'v1'
    rsp = await api.get(url=f'/apis/{group}', settings=settings, logger=logger)
    return str(rsp['preferredVersion']['version'])


@auth.authenticated
async def discover(
        *,
        settings: configuration.OperatorSettings,
        group: str,
        version: str,
        logger: typedefs.Logger,
        context: auth.APIContext | None = None,  # injected by the decorator
) -> Mapping[str, Mapping[str, Any]]:
    if context is None:
        raise RuntimeError("API instance is not injected by the decorator.")

    api_version = f'{group}/{version}'.strip('/')
    if api_version not in context.discovered_resources:
        url = '/api/v1' if group == '' and version == 'v1' else f'/apis/{group}/{version}'
        rsp = await api.get(url=url, settings=settings, logger=logger)
        context.discovered_resources[api_version] = {
            info['name']: info
            for info in rsp.get('resources', [])
        }
    return context.discovered_resources[api_version]


async def find_resource(
        *,
        settings: configuration.OperatorSettings,
        group: str,
        kind: str,
        logger: typedefs.Logger,
) -> references.Resource | None:
    """
    Resolve a kind-ish name to a specific resource in the group's preferred version.

    The name is matched against the kind, the plural, the singular name
    case-insensitively: e.g. ``Deployment``, ``deployments``, ``deployment``
    all resolve to ``deployments.v1.apps``. Subresources are never matched.

    Returns ``None`` if the group or the resource are not served by the API.
    """
    try:
        version = await get_preferred_version(settings=settings, group=group, logger=logger)
        infos = await discover(settings=settings, group=group, version=version, logger=logger)
    except errors.APINotFoundError:
        return None

    for name, info in infos.items():
        if '/' in name:
            continue
        names = {name, info.get('singularName') or '', info.get('kind') or ''}
        if kind.lower() in {n.lower() for n in names if n}:
            return references.Resource(
                group=group,
                version=version,
                plural=name,
                kind=info.get('kind'),
                namespaced=bool(info.get('namespaced', True)),
            )
    return None
