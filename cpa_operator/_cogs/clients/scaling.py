"""
The scale subresource client: read & write the replicas of any scalable target.

The targets are addressed the same way as in the scale target references:
by the API group, the kind (or the plural), the name, and the namespace.
The specific resource is resolved via the API discovery.
"""
from cpa_operator._cogs.clients import api, discovery
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies, references


class ScaleTargetNotFoundError(LookupError):
    """ Raised when the scale target's kind is not served by the API. """


class ScaleClient:
    """
    Access to the ``/scale`` subresource of arbitrary scalable resources.

    The scale objects are ``autoscaling/v1`` ``Scale`` bodies: the desired
    replicas are in ``spec.replicas``, the actual ones in ``status.replicas``.
    """

    def __init__(self, *, settings: configuration.OperatorSettings) -> None:
        super().__init__()
        self.settings = settings

    async def get(
            self,
            *,
            group: str,
            kind: str,
            name: str,
            namespace: references.NamespaceName,
            logger: typedefs.Logger,
    ) -> bodies.RawBody:
        resource = await self._resolve(group=group, kind=kind, logger=logger)
        scale: bodies.RawBody = await api.get(
            url=resource.get_url(namespace=namespace, name=name, subresource='scale'),
            settings=self.settings,
            logger=logger,
        )
        return scale

    async def update(
            self,
            *,
            group: str,
            kind: str,
            name: str,
            namespace: references.NamespaceName,
            scale: bodies.RawBody,
            logger: typedefs.Logger,
    ) -> bodies.RawBody:
        resource = await self._resolve(group=group, kind=kind, logger=logger)
        updated: bodies.RawBody = await api.put(
            url=resource.get_url(namespace=namespace, name=name, subresource='scale'),
            payload=scale,
            settings=self.settings,
            logger=logger,
        )
        return updated

    async def _resolve(
            self,
            *,
            group: str,
            kind: str,
            logger: typedefs.Logger,
    ) -> references.Resource:
        resource = await discovery.find_resource(
            settings=self.settings, group=group, kind=kind, logger=logger)
        if resource is None:
            what = f'{kind}.{group}' if group else kind
            raise ScaleTargetNotFoundError(f"The scale target's kind is not served: {what}")
        return resource
