"""alert-spine: scheduled polling of Alertmanager-compatible backends.

On independent cron schedules, each configured job pulls the currently
firing alerts from its backend, keeps the ones matching its label
predicate, builds one incident payload and hands it to the delivery
pipeline.
"""

__version__ = "0.1.0"
