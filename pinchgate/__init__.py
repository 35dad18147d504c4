"""pinchgate.

A governance layer that sits between callers and a catalog of *abilities*
(named, schema-validated operations) and a set of scheduled *governance
tasks* that inspect site content.

High-level architecture
-----------------------

- **Abilities**: every invocation goes through ``AbilityDispatcher``, which
  checks toggles and actor capabilities, validates input, and either runs the
  handler or defers it to the approval queue.
- **Approvals**: deferred invocations wait in ``ApprovalQueue`` until an
  administrator approves (the handler runs exactly once) or rejects them, or
  until they expire.
- **Resilience**: calls to the external AI gateway are guarded by a persisted
  ``CircuitBreaker``.
- **Governance**: ``GovernanceRunner`` runs catalog tasks in isolation and
  delivers their findings to the audit log and the outbound webhook.

Core subpackages
----------------

- ``pinchgate.abilities``: descriptors, registry, dispatcher and executor.
- ``pinchgate.approvals``: the approval queue.
- ``pinchgate.audit``: the redacting audit log.
- ``pinchgate.gateway`` / ``pinchgate.webhooks``: outbound HTTP integrations.
- ``pinchgate.governance``: tasks, runner and findings delivery.
- ``pinchgate.repos``: repository protocols and SQLAlchemy implementations.

Most integrations should start from ``pinchgate.factory.create_application``.
"""
