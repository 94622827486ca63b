"""
Reporting module.

Windowed totals, rankings and drill-downs computed from the audit log.
"""

from .router import router  # noqa: F401
