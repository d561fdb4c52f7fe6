"""
Interview Integrity Monitor

Watches a live interview video signal for integrity violations, turns noisy
per-frame observations into debounced alert events, and scores a session's
alert history into an integrity report.
"""

__version__ = "1.0.0"
__author__ = "Interview Integrity Team"
__description__ = "Debounced integrity alerts and scoring for remote interviews"
