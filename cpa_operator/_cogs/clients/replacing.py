from cpa_operator._cogs.clients import api
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies, references


async def replace_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace (i.e. fully update) an existing object of a specific resource kind.

    Unlike patching, the whole body is sent. If it contains the resource version
    (usually, taken from the object as it was read), K8s API performs
    the optimistic concurrency check and fails with HTTP 409 on the mismatch
    (`errors.APIConflictError`) -- which should be retried with a fresh read.
    """
    replaced_body: bodies.RawBody = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=body,
        logger=logger,
        settings=settings,
    )
    return replaced_body
