"""Generation Job Dispatcher.

Submits batches of image-generation jobs to an external provider with:
  - Sliding-window Rate Limiter (global requests per minute)
  - Credential Pool (cached active key per provider, demotion on failure)
  - Retry/Backoff Controller (infra retries vs. content-policy prompt rewrites)
  - Job Dispatcher (bounded concurrency, result aggregation, output sink)
"""
