import base64
import json
import re
from typing import Any

from kubernetes import client

from .errors import (
    MalformedConfig,
    MissingConfig,
    NoOrdinalSuffix,
    NotEnabled,
    NotOptedIn,
)
from .models import K8sObject, PodModel, StatefulSetModel

MutationConfig = dict[str, list[str]]

AFFINITY_PATH = "/spec/affinity"
NODE_AFFINITY_PATH = AFFINITY_PATH + "/nodeAffinity"
REQUIRED_PATH = NODE_AFFINITY_PATH + "/requiredDuringSchedulingIgnoredDuringExecution"
TERMS_PATH = REQUIRED_PATH + "/nodeSelectorTerms"
TEMPLATE_ANNOTATIONS_PATH = "/spec/template/metadata/annotations"

# Same literals Kubernetes accepts for boolean strings
_TRUE_LITERALS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_LITERALS = ("0", "f", "F", "FALSE", "false", "False")

_ORDINAL_RE = re.compile(r"[0-9]+")

_api_client = client.ApiClient()


def parse_bool(raw: str) -> bool | None:
    """Return True/False for a recognised boolean literal, None otherwise."""
    if raw in _TRUE_LITERALS:
        return True
    if raw in _FALSE_LITERALS:
        return False
    return None


def _describe(obj: K8sObject) -> str:
    return f"{obj.kind} {obj.name or '<unnamed>'} in namespace {obj.namespace or '<none>'}"


def resolve_mutation_config(obj: K8sObject, settings: Any) -> MutationConfig:
    """
    Gate an object on its opt-in annotations and parse its mutation config.

    Raises NotOptedIn, NotEnabled, MissingConfig or MalformedConfig; never
    touches the object.
    """
    annotations = obj.annotations or {}
    enabled_key = settings.enabled_annotation
    config_key = settings.config_annotation

    if enabled_key not in annotations:
        raise NotOptedIn(f"{_describe(obj)} does not have {enabled_key!r} annotation set")

    enabled = parse_bool(annotations[enabled_key])
    if enabled is None:
        raise NotEnabled(
            f"{_describe(obj)} has a non-boolean {enabled_key!r} value "
            f"{annotations[enabled_key]!r}; treating as disabled"
        )
    if not enabled:
        raise NotEnabled(f"{_describe(obj)} does not have {enabled_key!r} annotation set to true")

    if config_key not in annotations:
        raise MissingConfig(f"{_describe(obj)} does not have {config_key!r} annotation")

    try:
        config = json.loads(annotations[config_key])
    except ValueError as e:
        raise MalformedConfig(
            f"Error parsing {config_key!r} value for {_describe(obj)}: {e}"
        ) from e

    if not isinstance(config, dict) or not config:
        raise MalformedConfig(
            f"{config_key!r} for {_describe(obj)} must be a non-empty JSON object"
        )
    for key, values in config.items():
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise MalformedConfig(
                f"{config_key!r} for {_describe(obj)}: label {key!r} must map to a list of strings"
            )
        if not values:
            raise MalformedConfig(
                f"{config_key!r} for {_describe(obj)}: label {key!r} has no values"
            )
    return config


def extract_ordinal(name: str) -> int:
    """Return the replica ordinal from a StatefulSet pod name such as ``web-2``."""
    suffix = (name or "").rsplit("-", 1)[-1]
    if not _ORDINAL_RE.fullmatch(suffix):
        raise NoOrdinalSuffix(f"Pod {name!r} does not have an index in its suffix")
    return int(suffix)


def select_value(values: list[str], ordinal: int) -> str:
    return values[ordinal % len(values)]


def node_selector_term(config: MutationConfig, ordinal: int) -> dict[str, Any]:
    """One selector term ANDing an ``In`` requirement per configured label."""
    term = client.V1NodeSelectorTerm(
        match_expressions=[
            client.V1NodeSelectorRequirement(
                key=key, operator="In", values=[select_value(values, ordinal)]
            )
            for key, values in config.items()
        ]
    )
    return _api_client.sanitize_for_serialization(term)


def _add(path: str, value: Any) -> dict[str, Any]:
    return {"op": "add", "path": path, "value": value}


def build_affinity_patch(pod: PodModel, config: MutationConfig) -> list[dict[str, Any]]:
    """
    Produce a JSONPatch that appends the ordinal's node selector term to the
    pod's required node affinity.

    Every missing ancestor of nodeSelectorTerms is created first, top-down,
    because a JSON Patch ``add`` cannot target a path whose parent does not
    exist. The pod itself is left untouched.
    """
    ordinal = extract_ordinal(pod.name)
    patch: list[dict[str, Any]] = []

    affinity = pod.affinity
    if affinity is None:
        affinity = {}
        patch.append(_add(AFFINITY_PATH, {}))

    node_affinity = affinity.get("nodeAffinity")
    if node_affinity is None:
        node_affinity = {}
        patch.append(_add(NODE_AFFINITY_PATH, {}))

    required = node_affinity.get("requiredDuringSchedulingIgnoredDuringExecution")
    if required is None:
        required = {}
        patch.append(_add(REQUIRED_PATH, {}))

    if required.get("nodeSelectorTerms") is None:
        patch.append(_add(TERMS_PATH, []))

    patch.append(_add(TERMS_PATH + "/-", node_selector_term(config, ordinal)))
    return patch


def escape_json_pointer(token: str) -> str:
    # RFC 6901: "~" must be escaped before "/"
    return token.replace("~", "~0").replace("/", "~1")


def build_propagation_patch(sts: StatefulSetModel, settings: Any) -> list[dict[str, Any]]:
    """Copy the opt-in annotations onto the pod template so every replica inherits them."""
    patch: list[dict[str, Any]] = []
    if sts.template_annotations is None:
        patch.append(_add(TEMPLATE_ANNOTATIONS_PATH, {}))

    patch.append(
        _add(
            f"{TEMPLATE_ANNOTATIONS_PATH}/{escape_json_pointer(settings.enabled_annotation)}",
            "true",
        )
    )
    patch.append(
        _add(
            f"{TEMPLATE_ANNOTATIONS_PATH}/{escape_json_pointer(settings.config_annotation)}",
            sts.annotations[settings.config_annotation],
        )
    )
    return patch


def make_admission_response(
    uid: str, patch: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends to K8s to allow and optionally patch an object."""
    resp = {"uid": uid, "allowed": True}

    if patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()

    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": resp,
    }
