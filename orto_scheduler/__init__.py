"""
orto-scheduler: adaptive learning scheduler for orthopaedic education.

Decides per learner and day which content to serve, at what difficulty band,
and which spaced-repetition reviews are due.

Packages:
- core: enums, value objects, thresholds, errors
- study: SRS engine and review cards
- adaptive: band controller, domain gate, retention analysis
- session: daily mix composer and session processor
- cli: `orto` command line planner
"""

__version__ = "1.0.0"
