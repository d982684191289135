from .ctcrw import FittedCTCRW, ellipse_covariance, fit_ctcrw

__all__ = [
    "FittedCTCRW",
    "ellipse_covariance",
    "fit_ctcrw",
]
