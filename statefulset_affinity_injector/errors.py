"""
Outcomes that stop a mutation for the current admission request.

None of these are fatal: the routes log them with the request uid and answer
with an allowed, unpatched AdmissionReview.
"""


class InjectorError(Exception):
    """Base class for every reason the webhook declines to mutate an object."""


class GateError(InjectorError):
    """The object did not opt in, or its opt-in annotations are unusable."""


class NotOptedIn(GateError):
    pass


class NotEnabled(GateError):
    pass


class MissingConfig(GateError):
    pass


class MalformedConfig(GateError):
    pass


class OrdinalError(InjectorError):
    """The object is not a recognizable StatefulSet-managed Pod."""


class NoOrdinalSuffix(OrdinalError):
    pass


class ClassificationError(InjectorError):
    """The admission request does not describe a supported object."""


class UnexpectedResourceKind(ClassificationError):
    pass


class DecodeError(ClassificationError):
    pass
