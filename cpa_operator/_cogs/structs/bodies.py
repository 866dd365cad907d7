"""
The raw bodies of the K8s objects, as JSON-decoded from/for the API.

They are plain dicts at runtime. The type definitions only declare the fields
that the operator reads or writes; the objects can have any other fields.
The typed views of the declared autoscalers are in :mod:`autoscalers`.
"""
from collections.abc import Mapping, MutableMapping
from typing import Any, Literal, cast

from typing_extensions import TypedDict

Labels = Mapping[str, str]
Annotations = Mapping[str, str]

# The listed objects come with the ``None`` type, as if they were just added.
RawInputType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED', 'ERROR']
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']


class OwnerReference(TypedDict, total=False):
    controller: bool
    blockOwnerDeletion: bool
    apiVersion: str
    kind: str
    name: str
    uid: str


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    ownerReferences: list[OwnerReference]
    resourceVersion: str
    deletionTimestamp: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Any
    status: Any


class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class RawError(TypedDict, total=False):
    apiVersion: str
    kind: str
    code: int
    reason: str
    status: str
    message: str


class RawInput(TypedDict, total=True):
    type: RawInputType
    object: RawBody | RawError


def build_owner_reference(body: RawBody) -> OwnerReference:
    """
    An owner reference that makes the owner the controller of the owned object.

    The owned objects are garbage-collected by K8s when the owner is deleted.
    The absent fields (e.g. no ``uid`` in a never stored body) are omitted.
    """
    meta = body.get('metadata', {})
    ref = dict(
        controller=True,
        blockOwnerDeletion=True,
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=meta.get('name'),
        uid=meta.get('uid'),
    )
    return cast(OwnerReference, {key: val for key, val in ref.items() if val})


def append_owner_reference(obj: MutableMapping[str, Any], owner: RawBody) -> None:
    """ Add the owner reference to the object's metadata, unless it is already there. """
    owner_ref = build_owner_reference(owner)
    refs = obj.setdefault('metadata', {}).setdefault('ownerReferences', [])
    if not any(_is_same_owner(ref, owner_ref) for ref in refs):
        refs.append(owner_ref)


def get_controller_reference(body: Mapping[str, Any]) -> OwnerReference | None:
    """ Get the owner reference that is marked as the object's controller, if any. """
    refs = body.get('metadata', {}).get('ownerReferences', [])
    for ref in refs:
        if ref.get('controller'):
            return cast(OwnerReference, ref)
    return None


def _is_same_owner(ref1: Mapping[str, Any], ref2: Mapping[str, Any]) -> bool:
    # The uids are authoritative; the names are compared only for the unsaved owners.
    if ref1.get('uid') and ref2.get('uid'):
        return bool(ref1['uid'] == ref2['uid'])
    return all(ref1.get(key) == ref2.get(key) for key in ('apiVersion', 'kind', 'name'))
