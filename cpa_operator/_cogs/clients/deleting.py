from cpa_operator._cogs.clients import api, errors
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies, references


async def delete_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Delete an object of a specific resource kind.

    The owned objects are deleted in the background by K8s itself
    (the default propagation policy), so there is no need to wait for them.

    Returns ``None`` if the object is already absent, as detected by trying
    to delete it and failing with HTTP 404. Otherwise, the API's response:
    either the deleted object, or the object marked for deletion, or a status.
    """
    try:
        deleted: bodies.RawBody = await api.delete(
            url=resource.get_url(namespace=namespace, name=name),
            payload={'propagationPolicy': 'Background'},
            logger=logger,
            settings=settings,
        )
    except errors.APINotFoundError:
        return None
    return deleted
