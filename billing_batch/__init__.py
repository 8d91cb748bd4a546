"""
billing_batch -- background jobs for location enrichment.

Provides a job executor with per-item SAVEPOINT isolation, a simple
persistent job queue, and the location tasks that run on it: coordinate
lookup, census tract lookup, tax district lookup and address
standardization.

Architecture:
    billing_batch/ is the outermost package.  Nothing in billing_kernel
    or billing_config imports from billing_batch; the reconciler reaches
    the queue only through an injected ``district_enqueuer`` callable.

Invariants:
    - SAVEPOINT isolation per item: one failing location never aborts
      the rest of the run.
    - Job idempotency via a UNIQUE idempotency_key.
    - All timestamps come from an injected Clock.
    - An exclusive task never runs twice at once; the second run is
      cancelled.
    - Checkpoint tasks commit after every item, so a restart resumes
      where the previous run stopped.
"""
