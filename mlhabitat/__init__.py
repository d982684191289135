"""
Most-likely-habitat case study.

Compares habitat-use statistics derived from raw Argos fixes, from a
continuous-time movement model's smoothed track, and from a Monte Carlo
majority vote over posterior simulations of that model.
"""

__version__ = "0.1.0"
