"""
invoice_batch -- print jobs: single and bulk invoice generation.

Provides the JobOrchestrator (job lifecycle, per-order pipeline, progress,
cancellation, downloads and email delivery), the WorkQueue hand-off to
background JobWorkers, and ZIP bundling of bulk results.

Architecture:
    invoice_batch/ is a top-level package.  Nothing in invoice_kernel,
    invoice_render or invoice_config imports from invoice_batch, except
    the model discovery in invoice_kernel.db.engine.create_tables().

Invariants:
    - An invoice record exists only for a stored document.
    - One order's failure never aborts a bulk job.
    - Progress is monotonic while a job runs.
    - Jobs of one shop are invisible to every other shop.
"""
