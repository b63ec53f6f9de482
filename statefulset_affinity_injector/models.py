"""
Minimal models for the Kubernetes AdmissionReview, Pod and StatefulSet shapes
used by this webhook. Only the fields the mutation needs are decoded; unknown
fields are ignored so that new Kubernetes fields don't break this app, but the
fields we do read must have the type the API schema gives them.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) and StatefulSet (apps/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Protocol, Union

from .errors import DecodeError, UnexpectedResourceKind

POD_RESOURCE = "pods"
STATEFULSET_RESOURCE = "statefulsets"


def _get(d: dict[str, Any], key: str, expected: type, where: str):
    # Typed getter: absent or null is None, wrong type is a decode failure
    v = d.get(key)
    if v is None:
        return None
    if not isinstance(v, expected):
        raise DecodeError(
            f"{where}.{key} should be a {expected.__name__}, got {type(v).__name__}"
        )
    return v


def _string_map(d: dict[str, Any], key: str, where: str) -> dict[str, str] | None:
    m = _get(d, key, dict, where)
    if m is None:
        return None
    for k, v in m.items():
        if not isinstance(v, str):
            raise DecodeError(f"{where}.{key}[{k!r}] should be a str")
    return m


class K8sObject(Protocol):
    """What the annotation gate needs to know about any supported object."""

    name: str
    namespace: str
    annotations: dict[str, str]

    @property
    def kind(self) -> str: ...


@dataclass(frozen=True)
class PodModel:
    name: str
    namespace: str
    annotations: dict[str, str]
    # Raw spec.affinity, None when absent
    affinity: dict[str, Any] | None

    @property
    def kind(self) -> str:
        return "Pod"

    @staticmethod
    def from_dict(d: Any) -> "PodModel":
        if not isinstance(d, dict):
            raise DecodeError("Pod object should be a JSON object")
        meta = _get(d, "metadata", dict, "pod") or {}
        spec = _get(d, "spec", dict, "pod") or {}
        return PodModel(
            name=_get(meta, "name", str, "pod.metadata") or "",
            namespace=_get(meta, "namespace", str, "pod.metadata") or "",
            annotations=_string_map(meta, "annotations", "pod.metadata") or {},
            affinity=_get(spec, "affinity", dict, "pod.spec"),
        )


@dataclass(frozen=True)
class StatefulSetModel:
    name: str
    namespace: str
    annotations: dict[str, str]
    # spec.template.metadata.annotations, None when absent
    template_annotations: dict[str, str] | None

    @property
    def kind(self) -> str:
        return "StatefulSet"

    @staticmethod
    def from_dict(d: Any) -> "StatefulSetModel":
        if not isinstance(d, dict):
            raise DecodeError("StatefulSet object should be a JSON object")
        meta = _get(d, "metadata", dict, "statefulset") or {}
        spec = _get(d, "spec", dict, "statefulset") or {}
        template = _get(spec, "template", dict, "statefulset.spec") or {}
        template_meta = (
            _get(template, "metadata", dict, "statefulset.spec.template") or {}
        )
        return StatefulSetModel(
            name=_get(meta, "name", str, "statefulset.metadata") or "",
            namespace=_get(meta, "namespace", str, "statefulset.metadata") or "",
            annotations=_string_map(meta, "annotations", "statefulset.metadata")
            or {},
            template_annotations=_string_map(
                template_meta, "annotations", "statefulset.spec.template.metadata"
            ),
        )


@dataclass(frozen=True)
class AdmissionContext:
    uid: str
    resource: str
    namespace: str
    obj: Any
    operation: str = "CREATE"

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionContext"]:
        if not isinstance(d, dict):
            return None
        resource = d.get("resource")
        if not isinstance(resource, dict):
            resource = {}
        return AdmissionContext(
            uid=str(d.get("uid", "")),
            resource=str(resource.get("resource", "")),
            namespace=str(d.get("namespace") or ""),
            obj=d.get("object"),
            operation=str(d.get("operation", "CREATE")),
        )


@dataclass(frozen=True)
class AdmissionReviewModel:
    request: AdmissionContext

    @staticmethod
    def from_dict(d: Any) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req = AdmissionContext.from_dict(d.get("request"))
        if req is None:
            return None
        return AdmissionReviewModel(request=req)


_DECODERS = {
    POD_RESOURCE: PodModel.from_dict,
    STATEFULSET_RESOURCE: StatefulSetModel.from_dict,
}


def classify_request(
    ctx: AdmissionContext, expected: str | None = None
) -> Union[PodModel, StatefulSetModel]:
    """Decode the request's object into the typed model for its resource kind.

    ``expected`` pins the resource an endpoint serves; anything else, or a
    resource this webhook does not know, raises UnexpectedResourceKind.
    """
    decode = _DECODERS.get(ctx.resource)
    if decode is None or (expected is not None and ctx.resource != expected):
        want = expected or " or ".join(_DECODERS)
        raise UnexpectedResourceKind(
            f"Admission request object should be {want}, but instead we got {ctx.resource or 'nothing'}"
        )
    obj = decode(ctx.obj)
    # Objects posted to a namespaced URL may omit metadata.namespace
    if not obj.namespace and ctx.namespace:
        obj = replace(obj, namespace=ctx.namespace)
    return obj
