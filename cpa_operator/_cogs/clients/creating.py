from cpa_operator._cogs.clients import api
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies, references


async def create_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Create an object as described by its body, in the body's namespace.

    An already existing object fails with HTTP 409 (`errors.APIConflictError`).
    """
    namespace = body.get('metadata', {}).get('namespace')
    created: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=namespace),
        payload=body,
        settings=settings,
        logger=logger,
    )
    return created
