"""Exceptions raised by the habitat analysis modules."""


class HabitatAnalysisError(Exception):
    """Base class for all case-study errors"""


class InvalidInputError(HabitatAnalysisError, ValueError):
    """Bad arguments to the sampling pipeline (repetitions, empty input, label counts)"""


class ModelMismatchError(HabitatAnalysisError):
    """Fitted model was not fit on the observations it is being used with"""


class ModelFitError(HabitatAnalysisError):
    """Movement model optimisation did not produce a usable fit"""


class TrackDataError(HabitatAnalysisError):
    """Tracking data is missing required columns or has no usable fixes"""


class HabitatLayerError(HabitatAnalysisError):
    """Habitat polygon layer could not be loaded or interpreted"""
