"""
Vendor reputation and escalation engine.

  metrics / standing   - performance rates and the human-facing tier
  rules                - rates -> strongest warranted action
  ledger               - append-only action history and its state machine
  status_sync          - vendors.status projection + order-acceptance gate
  job                  - periodic expire / reconcile / evaluate cycle
"""
