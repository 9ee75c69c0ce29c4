"""Run the audit trail CLI: ``python -m ceo_governance.audit``."""

from ceo_governance.audit.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
