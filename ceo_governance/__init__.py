"""ceo-governance: governance add-on for AI-assisted development.

The audit trail lives in ``ceo_governance.audit``.
"""

__version__ = "0.1.0"
