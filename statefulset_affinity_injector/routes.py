import logging

from flask import Blueprint, jsonify, request

from .errors import ClassificationError, GateError, OrdinalError
from .helpers import (
    build_affinity_patch,
    build_propagation_patch,
    make_admission_response,
    resolve_mutation_config,
)
from .models import (
    POD_RESOURCE,
    STATEFULSET_RESOURCE,
    AdmissionReviewModel,
    classify_request,
)

log = logging.getLogger("statefulset-affinity-injector")


def create_routes(settings):
    bp = Blueprint("webhook", __name__)

    def admit(resource, build_patch):
        """
        Run one admission review through the mutation engine.

        Always answers exactly once and always allows: a request that cannot
        be mutated is passed through unpatched.
        """
        uid = ""
        try:
            admission = AdmissionReviewModel.from_dict(request.get_json(silent=True))
            if admission is None:
                # A non-2xx answer counts as a webhook failure under failurePolicy: Fail
                log.warning("Invalid AdmissionReview payload for %s", request.path)
                return jsonify(make_admission_response(uid=""))

            ctx = admission.request
            uid = ctx.uid
            log.info("Processing request: %s (%s %s)", uid, ctx.operation, ctx.resource)

            obj = classify_request(ctx, resource)
            config = resolve_mutation_config(obj, settings)
            patch = build_patch(obj, config)
            log.info(
                "Request ID: %s - patching %s %s/%s with %d operations",
                uid,
                obj.kind,
                obj.namespace,
                obj.name,
                len(patch),
            )
            log.debug("Request ID: %s - patch %s", uid, patch)
            return jsonify(make_admission_response(uid, patch))
        except GateError as e:
            log.info("Request ID: %s - not mutating: %s", uid, e)
        except (OrdinalError, ClassificationError) as e:
            log.warning("Request ID: %s - %s", uid, e)
        except Exception:
            log.error("Request ID: %s - error building patch", uid, exc_info=True)
        return jsonify(make_admission_response(uid))

    @bp.route("/status", methods=["GET"])
    def status():
        return {"status": "ok"}, 200

    @bp.route("/mutate-pods", methods=["POST"])
    def mutate_pods():
        # Late-bound so build_affinity_patch can be monkeypatched on this module
        return admit(
            POD_RESOURCE, lambda pod, config: build_affinity_patch(pod, config)
        )

    @bp.route("/mutate-statefulsets", methods=["POST"])
    def mutate_statefulsets():
        """
        Propagate the opt-in annotations of a StatefulSet that opted in itself
        onto its pod template.
        """
        return admit(
            STATEFULSET_RESOURCE,
            lambda sts, config: build_propagation_patch(sts, settings),
        )

    return bp
