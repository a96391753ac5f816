"""Chat gateway layer.

Sits between inbound chat requests and the rate-limited upstream model API:
  - Prompt Composer (system directive + bounded history)
  - Upstream Throttle (process-wide minimum call spacing)
  - Retry/Backoff Executor (linear backoff on 429 only)
  - Error Classifier (stable client-facing taxonomy)
"""
